"""Venue API credentials at rest.

Keys, secrets and passphrases are stored as Fernet tokens on the ``venue``
row and only decrypted when a gateway is built for that venue.
"""

from cryptography.fernet import Fernet, InvalidToken

from tradecore.config import settings
from tradecore.services.gateway.base import Credentials

_fernet: Fernet | None = None


class CredentialDecryptionError(Exception):
    """Stored credentials do not decrypt with the configured key (rotated or wrong key)."""

    def __init__(self, venue_name: str):
        self.venue_name = venue_name
        super().__init__(f"Credentials for venue '{venue_name}' cannot be decrypted with TC_ENCRYPTION_KEY")


def _cipher() -> Fernet:
    global _fernet
    if _fernet is None:
        if not settings.encryption_key:
            raise RuntimeError(
                "TC_ENCRYPTION_KEY is required to store or use venue credentials "
                "(any urlsafe base64 32-byte key, e.g. Fernet.generate_key())"
            )
        _fernet = Fernet(settings.encryption_key.encode())
    return _fernet


def encrypt(plaintext: str) -> str:
    """Empty values stay empty so a paper-only venue needs no key."""
    if not plaintext:
        return ""
    return _cipher().encrypt(plaintext.encode()).decode()


def decrypt(token: str) -> str:
    if not token:
        return ""
    return _cipher().decrypt(token.encode()).decode()


def encrypt_credentials(api_key: str, api_secret: str, passphrase: str = "") -> dict[str, str]:
    """Column values for a ``Venue`` row."""
    return {
        "api_key_encrypted": encrypt(api_key),
        "api_secret_encrypted": encrypt(api_secret),
        "passphrase_encrypted": encrypt(passphrase),
    }


def decrypt_credentials(venue) -> Credentials:
    """Plaintext credentials of a stored venue.

    Raises:
        CredentialDecryptionError: a token was written under a different key.
    """
    try:
        return Credentials(
            api_key=decrypt(venue.api_key_encrypted),
            api_secret=decrypt(venue.api_secret_encrypted),
            passphrase=decrypt(venue.passphrase_encrypted) or None,
        )
    except InvalidToken as e:
        raise CredentialDecryptionError(venue.name) from e
