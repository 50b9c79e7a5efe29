"""
Symmetric sealing and keyed hashing derived from ENCRYPTION_KEY.
"""
import base64
import hashlib
import hmac

from cryptography.fernet import Fernet, InvalidToken


def keyed_digest(key: str, value: str) -> str:
    """Hex HMAC-SHA256 of value under key."""
    return hmac.new(key.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).hexdigest()


class FieldCipher:
    """Reversible encryption for individual stored fields (emails, pending codes)."""

    def __init__(self, key: str):
        # Fernet wants 32 url-safe base64 bytes; derive them from the configured key
        derived = base64.urlsafe_b64encode(hashlib.sha256(key.encode("utf-8")).digest())
        self._fernet = Fernet(derived)

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        """Raises ValueError when the token was not produced with this key."""
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            raise ValueError("Could not decrypt field") from e
