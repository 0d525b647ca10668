"""
Password hashing for local accounts.

Only account passwords are hashed here. Stored credential secrets are not
touched by this module.
"""

import base64
import os
from typing import Dict, Optional

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from . import config


class CryptoManager:
    """Derives and checks PBKDF2-HMAC-SHA256 password digests."""

    def __init__(self, iterations: int = config.KEY_DERIVATION_ITERATIONS):
        self.iterations = iterations

    def generate_salt(self) -> bytes:
        """Generate a cryptographically secure random salt."""
        return os.urandom(config.SALT_SIZE)

    def _kdf(self, salt: bytes, iterations: int) -> PBKDF2HMAC:
        return PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=config.KEY_SIZE,
            salt=salt,
            iterations=iterations,
        )

    def derive_key(self, password: str, salt: bytes, iterations: Optional[int] = None) -> bytes:
        """
        Derive a digest from a password.

        Args:
            password: The account password
            salt: Random salt for key derivation
            iterations: PBKDF2 rounds; defaults to this manager's setting

        Returns:
            32-byte digest
        """
        return self._kdf(salt, iterations or self.iterations).derive(password.encode('utf-8'))

    def hash_password(self, password: str) -> Dict[str, object]:
        """Hash a password into a JSON-serializable record."""
        salt = self.generate_salt()
        return {
            'salt': base64.b64encode(salt).decode('ascii'),
            'hash': base64.b64encode(self.derive_key(password, salt)).decode('ascii'),
            'iterations': self.iterations,
        }

    def check_password(self, password: str, stored: Dict[str, object]) -> bool:
        """Compare a password against a record from hash_password, in constant time."""
        salt = base64.b64decode(stored['salt'])
        expected = base64.b64decode(stored['hash'])
        try:
            self._kdf(salt, int(stored['iterations'])).verify(password.encode('utf-8'), expected)
        except InvalidKey:
            return False
        return True
