# LycheeLock - Vault Encryption
#
# Master password + salt → MasterKey (PBKDF2-HMAC-SHA256)
# Whole-vault payload encryption (AES-256-GCM, fresh 96-bit nonce per call)
# Base64 helpers for the remote record's text columns

import asyncio
import base64
import binascii
import hmac
import json
import os
from dataclasses import dataclass
from typing import Any, Optional, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.config import DEFAULT_PBKDF2_ITERATIONS, MIN_PBKDF2_ITERATIONS
from .errors import DecryptionFailedError, KeyDerivationError, NotAuthenticatedError

KEY_LENGTH = 32  # 256 bits for AES-256
SALT_LENGTH = 16  # Minimum and generated salt size
NONCE_LENGTH = 12  # 96-bit nonce for GCM


class MasterKey:
    """
    In-memory AES-256-GCM key for one unlocked session.

    The raw material is not exposed: it can only be used through
    ``aead()``. It refuses pickling, masks its repr, and is zeroized by
    ``destroy()`` when the session locks or logs out.

    Limitation: ``AESGCM`` keeps its own immutable copy of the key. One
    primitive is built per key and the reference is dropped on destroy,
    but that copy is freed by the garbage collector, not overwritten.
    """

    __slots__ = ("_material", "_destroyed", "_aead")

    def __init__(self, material: bytes):
        if len(material) != KEY_LENGTH:
            raise KeyDerivationError(f"key must be {KEY_LENGTH} bytes")
        self._material = bytearray(material)
        self._destroyed = False
        self._aead: Optional[AESGCM] = None

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def aead(self) -> AESGCM:
        """Return an AES-GCM primitive bound to this key."""
        if self.destroyed:
            raise NotAuthenticatedError("master key has been destroyed")
        if self._aead is None:
            self._aead = AESGCM(bytes(self._material))
        return self._aead

    def destroy(self) -> None:
        """Zeroize the key material."""
        for i in range(len(self._material)):
            self._material[i] = 0
        self._aead = None
        self._destroyed = True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MasterKey):
            return NotImplemented
        return hmac.compare_digest(bytes(self._material), bytes(other._material))

    def __repr__(self) -> str:
        state = "destroyed" if self.destroyed else "active"
        return f"<MasterKey {state}>"

    def __reduce__(self):
        raise TypeError("MasterKey cannot be serialized")


def generate_salt() -> bytes:
    """Generate cryptographically random salt (created once per account)."""
    return os.urandom(SALT_LENGTH)


def derive_key(
    password: Union[str, bytes],
    salt: bytes,
    iterations: int = DEFAULT_PBKDF2_ITERATIONS,
) -> MasterKey:
    """
    Derive the vault key from a password using PBKDF2-HMAC-SHA256.

    Args:
        password: User's master password
        salt: Per-account salt (at least 16 bytes)
        iterations: PBKDF2 work factor (at least 100,000)

    Returns:
        256-bit MasterKey

    Raises:
        KeyDerivationError: If any input is malformed
    """
    if isinstance(password, str):
        password = password.encode("utf-8")
    if not isinstance(password, (bytes, bytearray)) or len(password) == 0:
        raise KeyDerivationError("password must be a non-empty string")
    if not isinstance(salt, (bytes, bytearray)) or len(salt) < SALT_LENGTH:
        raise KeyDerivationError(f"salt must be at least {SALT_LENGTH} bytes")
    if iterations < MIN_PBKDF2_ITERATIONS:
        raise KeyDerivationError(
            f"iterations must be at least {MIN_PBKDF2_ITERATIONS}"
        )

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=iterations,
        backend=default_backend()
    )
    return MasterKey(kdf.derive(bytes(password)))


async def derive_key_async(
    password: Union[str, bytes],
    salt: bytes,
    iterations: int = DEFAULT_PBKDF2_ITERATIONS,
) -> MasterKey:
    """Run ``derive_key`` in a worker thread so the event loop stays free."""
    return await asyncio.to_thread(derive_key, password, salt, iterations)


@dataclass(frozen=True)
class VaultBlob:
    """Ciphertext (GCM tag appended) plus the nonce that produced it."""

    ciphertext: bytes
    nonce: bytes

    def encode(self) -> Tuple[str, str]:
        """Base64 text for the record's encrypted_data / iv columns."""
        return encode_for_storage(self.ciphertext), encode_for_storage(self.nonce)

    @classmethod
    def decode(cls, encrypted_data: str, iv: str) -> "VaultBlob":
        """Parse the record's text columns; malformed input fails closed."""
        try:
            return cls(
                ciphertext=decode_from_storage(encrypted_data),
                nonce=decode_from_storage(iv),
            )
        except (binascii.Error, ValueError):
            raise DecryptionFailedError() from None


class VaultCipher:
    """
    Authenticated encryption of the whole vault payload.

    Flow:
    1. Payload is serialized to canonical UTF-8 JSON
    2. A fresh random 96-bit nonce is drawn for every encryption
    3. AES-256-GCM produces ciphertext with the tag bound in
    4. Decryption verifies the tag before any plaintext is returned
    """

    @staticmethod
    def serialize(payload: Any) -> bytes:
        """Canonical byte encoding of a JSON-serializable payload."""
        return json.dumps(
            payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    @staticmethod
    def encrypt(payload: Any, key: MasterKey) -> VaultBlob:
        """
        Encrypt a payload with AES-256-GCM.

        Args:
            payload: Any JSON-serializable value
            key: Session MasterKey

        Returns:
            VaultBlob (ciphertext, nonce)
        """
        plaintext = VaultCipher.serialize(payload)

        # Must be unique per encryption under the same key
        nonce = os.urandom(NONCE_LENGTH)
        ciphertext = key.aead().encrypt(nonce, plaintext, None)

        return VaultBlob(ciphertext=ciphertext, nonce=nonce)

    @staticmethod
    def decrypt(ciphertext: bytes, nonce: bytes, key: MasterKey) -> Any:
        """
        Decrypt and deserialize a vault payload.

        Raises:
            DecryptionFailedError: On tag mismatch, wrong key, truncated
                input or a malformed nonce. No partial plaintext is ever
                returned.
        """
        if len(nonce) != NONCE_LENGTH:
            raise DecryptionFailedError()

        aead = key.aead()
        try:
            plaintext = aead.decrypt(nonce, ciphertext, None)
        except (InvalidTag, ValueError):
            raise DecryptionFailedError() from None

        try:
            return json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise DecryptionFailedError() from None

    @staticmethod
    def decrypt_blob(blob: VaultBlob, key: MasterKey) -> Any:
        return VaultCipher.decrypt(blob.ciphertext, blob.nonce, key)


def encode_for_storage(data: bytes) -> str:
    """Encode binary data as base64 text for the remote store."""
    return base64.b64encode(data).decode('ascii')


def decode_from_storage(data: str) -> bytes:
    """Decode base64 text from the remote store."""
    return base64.b64decode(data.encode('ascii'), validate=True)
