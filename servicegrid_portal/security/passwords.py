"""bcrypt password hashing shared by portal customers and staff users."""

import logging

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt ignores (newer releases reject) anything past 72 bytes of input
BCRYPT_MAX_BYTES = 72


def password_fits_bcrypt(password: str) -> bool:
    return 0 < len(password.encode("utf-8")) <= BCRYPT_MAX_BYTES


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash. Malformed input never verifies."""
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        logger.warning("Password verification rejected malformed input")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')
