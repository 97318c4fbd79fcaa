import secrets
import string
from datetime import datetime

import pyotp
from loguru import logger

from lock_it.errors import ConfigurationError
from lock_it.schema import (
    PasswordConfig,
    PasswordType,
    TotpProvisioning,
    UnlockMethod,
    VerifyResult,
)

# One step before and after the current 30s step
TOTP_VALID_WINDOW = 1
DEVICE_NAME_ALPHABET = string.ascii_uppercase + string.digits


def generate_default_device_name() -> str:
    return "".join(secrets.choice(DEVICE_NAME_ALPHABET) for _ in range(4))


def normalize_device_name(name: str | None) -> str:
    trimmed = (name or "").strip()
    return trimmed or generate_default_device_name()


class CredentialVerifier:
    """Checks a submitted secret against the fixed password and/or TOTP secret."""

    def __init__(self, issuer: str = "Lock It"):
        self.issuer = issuer

    def verify(
        self, submitted: str, config: PasswordConfig, now: datetime | None = None
    ) -> VerifyResult:
        """
        Verifies ``submitted`` with the methods enabled by ``config.type``.

        The fixed password is tried first; TOTP accepts the current step and
        one step either side. Wrong secrets return ``success=False``; a config
        missing the secret its method needs raises ConfigurationError.
        """
        if not submitted:
            return VerifyResult(success=False)

        self._check_config(config)

        if config.type in (PasswordType.FIXED, PasswordType.BOTH):
            if self._matches_fixed(submitted, config.fixed_password):
                return VerifyResult(success=True, method=UnlockMethod.FIXED)

        if config.type in (PasswordType.TOTP, PasswordType.BOTH):
            if self._matches_totp(submitted, config.totp_secret, now):
                return VerifyResult(success=True, method=UnlockMethod.TOTP)

        return VerifyResult(success=False)

    def verify_fixed(self, submitted: str, config: PasswordConfig) -> VerifyResult:
        """Fixed-password-only verification, whatever methods are configured."""
        if not submitted:
            return VerifyResult(success=False)
        if not config.fixed_password:
            raise ConfigurationError("Verification unavailable: no fixed password is set")
        if self._matches_fixed(submitted, config.fixed_password):
            return VerifyResult(success=True, method=UnlockMethod.FIXED)
        return VerifyResult(success=False)

    def verify_totp_code(self, code: str, secret: str, now: datetime | None = None) -> bool:
        """Checks a code against an explicit secret (used before a new secret is saved)."""
        if not code or not secret:
            return False
        return self._matches_totp(code, secret, now)

    def generate_secret(self, device_name: str | None = None) -> TotpProvisioning:
        """Creates a new base32 TOTP secret and its otpauth:// provisioning URI. Nothing is saved."""
        name = normalize_device_name(device_name)
        # 32 base32 characters = 160 bits
        secret = pyotp.random_base32(length=32)
        url = pyotp.TOTP(secret).provisioning_uri(name=name, issuer_name=self.issuer)
        logger.info(f"Generated a new TOTP secret for device '{name}'")
        return TotpProvisioning(secret=secret, otpauth_url=url, device_name=name)

    @staticmethod
    def _check_config(config: PasswordConfig):
        if config.type == PasswordType.FIXED and not config.fixed_password:
            raise ConfigurationError(
                "Verification unavailable: fixed password method has no password set"
            )
        if config.type in (PasswordType.TOTP, PasswordType.BOTH) and not config.totp_secret:
            raise ConfigurationError(
                f"Verification unavailable: {config.type.value} method has no TOTP secret"
            )
        if config.type == PasswordType.BOTH and not config.fixed_password:
            raise ConfigurationError(
                "Verification unavailable: both method has no fixed password set"
            )

    @staticmethod
    def _matches_fixed(submitted: str, expected: str | None) -> bool:
        if not expected:
            return False
        return secrets.compare_digest(submitted.encode(), expected.encode())

    @staticmethod
    def _matches_totp(code: str, secret: str | None, now: datetime | None) -> bool:
        if not secret:
            return False
        code = code.strip().replace(" ", "")
        if len(code) != 6 or not code.isdigit():
            return False
        try:
            totp = pyotp.TOTP(secret)
            return totp.verify(code, for_time=now or datetime.now(), valid_window=TOTP_VALID_WINDOW)
        except (ValueError, TypeError) as e:
            # binascii.Error (bad base32) is a ValueError
            raise ConfigurationError(f"Verification unavailable: malformed TOTP secret ({e})") from e
