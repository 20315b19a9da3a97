# LycheeLock - TOTP Second Factor
#
# RFC 6238 time-based one-time passwords gate vault unlocking:
# - Per-account base32 secret (160 bits) for authenticator apps
# - 6-digit codes over 30-second steps (HMAC-SHA1, dynamic truncation)
# - Verification across +/- window steps for clock skew
# - otpauth:// provisioning URI and QR image for enrollment

import base64
import binascii
import hmac
import io
import time
from typing import Optional

import pyotp
import qrcode
from qrcode.constants import ERROR_CORRECT_L

TOTP_STEP = 30  # seconds
TOTP_DIGITS = 6
SECRET_LENGTH = 32  # base32 characters = 160 bits


class TotpEngine:
    """
    Generates and verifies time-stepped one-time codes.

    Usage::

        engine = TotpEngine(issuer="LycheeLock")
        secret = engine.generate_secret()
        uri = engine.provisioning_uri("alice", secret)
        engine.verify_code("123456", secret)
    """

    def __init__(
        self,
        issuer: str = "LycheeLock",
        step: int = TOTP_STEP,
        digits: int = TOTP_DIGITS,
        window: int = 1,
    ):
        if step <= 0:
            raise ValueError("step must be positive")
        if window < 0:
            raise ValueError("window must not be negative")
        self.issuer = issuer
        self.step = step
        self.digits = digits
        self.window = window

    def generate_secret(self) -> str:
        """Fresh high-entropy base32 secret (independent per account)."""
        return pyotp.random_base32(length=SECRET_LENGTH)

    def _totp(self, secret: str) -> pyotp.TOTP:
        try:
            base64.b32decode(secret.upper() + "=" * (-len(secret) % 8), casefold=True)
        except (binascii.Error, ValueError, AttributeError):
            raise ValueError("TOTP secret must be base32 text") from None
        return pyotp.TOTP(secret, digits=self.digits, interval=self.step, issuer=self.issuer)

    def counter_at(self, timestamp: float) -> int:
        """Time-step counter: floor(timestamp / step)."""
        return int(timestamp // self.step)

    def generate_code(self, secret: str, timestamp: Optional[float] = None) -> str:
        """
        Compute the code for the step containing ``timestamp``.

        Args:
            secret: Base32 TOTP secret
            timestamp: Unix time (default: now)

        Returns:
            Zero-padded numeric code
        """
        if timestamp is None:
            timestamp = time.time()
        return self._totp(secret).generate_otp(self.counter_at(timestamp))

    def verify_code(
        self,
        code: str,
        secret: str,
        timestamp: Optional[float] = None,
        window: Optional[int] = None,
    ) -> bool:
        """
        Check a code against the current step and +/- ``window`` steps.

        Every candidate is compared in constant time and all candidates
        are always checked, so timing does not depend on which step (or
        how many digits) matched.
        """
        if timestamp is None:
            timestamp = time.time()
        if window is None:
            window = self.window
        if window < 0:
            raise ValueError("window must not be negative")

        totp = self._totp(secret)
        submitted = (code or "").replace(" ", "")
        well_formed = len(submitted) == self.digits and submitted.isdigit()
        # Compare against a same-length value when malformed
        probe = submitted if well_formed else "0" * self.digits

        counter = self.counter_at(timestamp)
        matched = False
        for offset in range(-window, window + 1):
            step_counter = counter + offset
            if step_counter < 0:
                continue
            candidate = totp.generate_otp(step_counter)
            matched |= hmac.compare_digest(candidate.encode(), probe.encode())

        return matched and well_formed

    def provisioning_uri(self, username: str, secret: str, issuer: Optional[str] = None) -> str:
        """``otpauth://totp/{issuer}:{username}?secret=...&issuer=...``"""
        return self._totp(secret).provisioning_uri(
            name=username, issuer_name=issuer or self.issuer
        )

    @staticmethod
    def render_qr(uri: str, box_size: int = 4, border: int = 4) -> str:
        """Encode a URI as a PNG QR code data URL."""
        qr = qrcode.QRCode(error_correction=ERROR_CORRECT_L, box_size=box_size, border=border)
        qr.add_data(uri)
        qr.make(fit=True)
        img = qr.make_image()

        buf = io.BytesIO()
        img.save(buf)
        encoded = base64.b64encode(buf.getvalue()).decode("ascii")
        return f"data:image/png;base64,{encoded}"
