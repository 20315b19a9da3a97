# LycheeLock - Runtime Configuration
#
# Settings are read from the environment (optionally seeded from a .env
# file via python-dotenv). Every knob has a safe default; the PBKDF2 work
# factor can be raised but never lowered below the floor.

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv

# PBKDF2-SHA256 work factor (OWASP 2023 recommends 600k)
DEFAULT_PBKDF2_ITERATIONS = 600_000
MIN_PBKDF2_ITERATIONS = 100_000

DEFAULT_TOTP_ISSUER = "LycheeLock"
DEFAULT_TOTP_WINDOW = 1  # Accept one step of clock skew either way

REMOTE_BACKENDS = ("memory", "sqlite", "postgrest")


@dataclass
class Settings:
    """Configuration for a vault process.

    Environment variables (all optional):
        LYCHEE_PBKDF2_ITERATIONS, LYCHEE_TOTP_ISSUER, LYCHEE_TOTP_WINDOW,
        LYCHEE_REMOTE_BACKEND, LYCHEE_SQLITE_PATH, LYCHEE_POSTGREST_URL,
        LYCHEE_POSTGREST_KEY, LYCHEE_AUDIT_LOG_DIR
    """

    pbkdf2_iterations: int = DEFAULT_PBKDF2_ITERATIONS
    totp_issuer: str = DEFAULT_TOTP_ISSUER
    totp_window: int = DEFAULT_TOTP_WINDOW
    remote_backend: str = "sqlite"
    sqlite_path: Path = field(default_factory=lambda: Path("data/vaults.db"))
    postgrest_url: str = ""
    postgrest_key: str = field(default="", repr=False)
    audit_log_dir: Path = field(default_factory=lambda: Path("./audit_logs"))

    def __post_init__(self):
        self.sqlite_path = Path(self.sqlite_path)
        self.audit_log_dir = Path(self.audit_log_dir)
        self.validate()

    def validate(self) -> None:
        """Raise ValueError if any setting is out of range."""
        if self.pbkdf2_iterations < MIN_PBKDF2_ITERATIONS:
            raise ValueError(
                f"pbkdf2_iterations must be >= {MIN_PBKDF2_ITERATIONS}, "
                f"got {self.pbkdf2_iterations}"
            )
        if self.totp_window < 0:
            raise ValueError("totp_window must not be negative")
        if not self.totp_issuer or ":" in self.totp_issuer:
            raise ValueError("totp_issuer must be non-empty and contain no ':'")
        if self.remote_backend not in REMOTE_BACKENDS:
            raise ValueError(
                f"remote_backend must be one of {', '.join(REMOTE_BACKENDS)}, "
                f"got {self.remote_backend!r}"
            )
        if self.remote_backend == "postgrest" and not self.postgrest_url:
            raise ValueError("LYCHEE_POSTGREST_URL is required for the postgrest backend")

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "Settings":
        """Build settings from the process environment.

        Args:
            env_file: Optional .env file loaded first. Values already set
                      in the environment win over the file.
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)
        else:
            load_dotenv(override=False)

        def _int(name: str, default: int) -> int:
            raw = os.getenv(name)
            if raw is None or raw.strip() == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {raw!r}") from None

        return cls(
            pbkdf2_iterations=_int("LYCHEE_PBKDF2_ITERATIONS", DEFAULT_PBKDF2_ITERATIONS),
            totp_issuer=os.getenv("LYCHEE_TOTP_ISSUER", DEFAULT_TOTP_ISSUER),
            totp_window=_int("LYCHEE_TOTP_WINDOW", DEFAULT_TOTP_WINDOW),
            remote_backend=os.getenv("LYCHEE_REMOTE_BACKEND", "sqlite").lower(),
            sqlite_path=Path(os.getenv("LYCHEE_SQLITE_PATH", "data/vaults.db")),
            postgrest_url=os.getenv("LYCHEE_POSTGREST_URL", ""),
            postgrest_key=os.getenv("LYCHEE_POSTGREST_KEY", ""),
            audit_log_dir=Path(os.getenv("LYCHEE_AUDIT_LOG_DIR", "./audit_logs")),
        )
