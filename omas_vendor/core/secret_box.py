"""
Fernet encrypt/decrypt for secrets kept on local disk.

Used for the offline (refresh) token when OMAS_TOKEN_ENCRYPTION_KEY is set.
Generate a key with:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

from cryptography.fernet import Fernet, InvalidToken

__all__ = ["SecretBox", "InvalidToken"]


class SecretBox:
    def __init__(self, key: str) -> None:
        self._fernet = Fernet(key.encode())

    def encrypt(self, plaintext: str) -> str:
        """Returns a URL-safe base64 token string."""
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, token: str) -> str:
        return self._fernet.decrypt(token.encode()).decode()
