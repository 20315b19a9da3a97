# LycheeLock - Observable State Container
#
# Holds one immutable snapshot and a list of observers. Every set()/
# update() replaces the snapshot and notifies observers in registration
# order. Reads go through get(); subscribing is only for observing change.

import logging
import threading
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StateContainer(Generic[T]):
    """Event-emitting holder for a snapshot of type ``T``.

    Usage::

        state = StateContainer(VaultState())
        unsubscribe = state.subscribe(render)
        state.update(lambda s: replace(s, is_loading=True))
        unsubscribe()
    """

    def __init__(self, initial: T):
        self._initial = initial
        self._value = initial
        self._observers: List[Callable[[T], None]] = []
        self._lock = threading.RLock()

    def get(self) -> T:
        """Current snapshot."""
        return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value
            observers = list(self._observers)
        self._notify(observers, value)

    def update(self, fn: Callable[[T], T]) -> T:
        """Apply ``fn`` to the current snapshot and publish the result."""
        with self._lock:
            value = fn(self._value)
            self._value = value
            observers = list(self._observers)
        self._notify(observers, value)
        return value

    def reset(self) -> None:
        self.set(self._initial)

    def subscribe(self, observer: Callable[[T], None]) -> Callable[[], None]:
        """Register an observer; it is called immediately with the current
        snapshot. Returns an unsubscribe function."""
        with self._lock:
            self._observers.append(observer)
            current = self._value

        self._notify([observer], current)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def _notify(self, observers: List[Callable[[T], None]], value: T) -> None:
        for observer in observers:
            try:
                observer(value)
            except Exception as e:
                logger.error("Observer %r failed: %s", observer, e, exc_info=True)
