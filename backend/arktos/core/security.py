"""Password hashing helpers built on pwdlib's bcrypt hasher."""

from pwdlib import PasswordHash
from pwdlib.hashers.bcrypt import BcryptHasher


def build_password_hash(rounds: int = 12) -> PasswordHash:
    """Create a bcrypt-only ``PasswordHash`` with the given cost factor.

    Args:
        rounds: bcrypt cost factor (log2 of the iteration count).

    Returns:
        PasswordHash: Hasher used for new hashes and for verification.
    """
    return PasswordHash((BcryptHasher(rounds=rounds),))


def hash_password(password_hash: PasswordHash, password: str) -> str:
    """Hash a plain password into a salted bcrypt string."""
    return password_hash.hash(password)


def verify_password(
    password_hash: PasswordHash, plain_password: str, hashed_password: str
) -> bool:
    """Verify a plain password against a stored hash.

    Args:
        password_hash: Configured hasher.
        plain_password: The clear-text password provided by the user.
        hashed_password: The stored password hash to verify against.

    Returns:
        bool: True if the password matches, False otherwise.
    """
    return password_hash.verify(plain_password, hashed_password)
