"""Password hashing for member credentials.

Hashes are produced and checked with ``werkzeug.security``; the stored value
embeds its method and salt, so changing ``password_hash_method`` only affects
newly set passwords.
"""

import logging
import secrets

from werkzeug.security import check_password_hash, generate_password_hash

from .config import get_config

logger = logging.getLogger(__name__)


class CredentialVerifier:
    """Hashes and verifies member passwords."""

    def __init__(self, method: str | None = None):
        self.method = method or get_config().password_hash_method
        self._dummy_hash: str | None = None

    def hash_password(self, password: str) -> str:
        if not password or not password.strip():
            raise ValueError("Password cannot be empty")
        return generate_password_hash(password, method=self.method)

    def verify(self, credential_hash: str, password: str) -> bool:
        if not credential_hash or password is None:
            return False
        return check_password_hash(credential_hash, password)

    def verify_unknown(self, password: str) -> bool:
        """
        Spend the same hashing work as a real check, then fail.

        Used when the member does not exist so response time does not reveal
        which member ids are valid.
        """
        if self._dummy_hash is None:
            self._dummy_hash = generate_password_hash(secrets.token_hex(16), method=self.method)
        check_password_hash(self._dummy_hash, password or "")
        return False
