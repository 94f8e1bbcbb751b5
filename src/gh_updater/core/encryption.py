"""Encryption of GitHub App secrets at rest.

Uses Fernet symmetric encryption with a key derived from the
process-wide ENCRYPTION_KEY setting.
"""

import base64
import logging

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

# Salt for key derivation (constant, not secret)
_SALT = b"gh_updater_credential_encryption_v1"
_DEV_KEY = "dev-only-insecure-key-do-not-use-in-prod"


class DecryptionError(Exception):
    """Raised when a stored secret cannot be decrypted with the current key."""


class SecretCipher:
    """Encrypts and decrypts credential strings with one derived Fernet key."""

    def __init__(self, encryption_key: str) -> None:
        if not encryption_key:
            logger.warning(
                "ENCRYPTION_KEY not set! Using insecure default. "
                "Set ENCRYPTION_KEY env var in production."
            )
            encryption_key = _DEV_KEY

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=_SALT,
            iterations=480000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(encryption_key.encode()))
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret for storage. Empty secrets stay empty."""
        if not plaintext:
            return ""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a stored secret.

        Raises:
            DecryptionError: If the token was produced with another key or is corrupted
        """
        if not token:
            return ""
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except (InvalidToken, ValueError) as exc:
            raise DecryptionError("Stored secret could not be decrypted") from exc


def mask_secret(secret: str) -> str:
    """Mask a secret for display (show first 4 and last 4 chars)."""
    if len(secret) <= 12:
        return "*" * len(secret)
    return f"{secret[:4]}...{secret[-4:]}"
