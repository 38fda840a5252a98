"""Password hashing for email/password accounts."""

from typing import Optional

import bcrypt
import structlog

logger = structlog.get_logger(__name__)

BCRYPT_ROUNDS = 10

# bcrypt only consumes the first 72 bytes of input; newer releases raise
# instead of truncating, so the cut is made explicitly.
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class AuthService:
    """One-way, per-record salted password hashing."""

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string (salt embedded)
        """
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(_encode(password), salt).decode("utf-8")

    def verify_password(self, password: str, password_hash: Optional[str]) -> bool:
        """Verify a password against a stored bcrypt hash.

        Accounts without a hash (OAuth-only) never verify. A corrupt hash
        is logged and treated as a mismatch.

        Args:
            password: Plain-text password to check
            password_hash: Stored hash, or None

        Returns:
            True if the password matches, False otherwise
        """
        if not password_hash:
            return False

        try:
            return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
        except ValueError as e:
            logger.warning("password_hash_unreadable", error=str(e))
            return False
