"""
Security utilities: password hashing, JWT tokens, and card number protection.

All cryptographic operations live here so they're easy to audit:

1. PASSWORD HASHING (Argon2id via passlib)
   Passwords are never stored in plaintext. Argon2id is memory-hard and
   time-hard, which makes GPU brute force expensive.

2. JWT TOKENS (python-jose, HS256)
   After login the user receives a signed token whose "sub" claim is their
   user id. Tokens expire after ACCESS_TOKEN_EXPIRE_MINUTES; the server keeps
   no session state.

3. CARD NUMBERS (cryptography Fernet)
   Card numbers are generated with a CSPRNG, encrypted at rest with Fernet
   (authenticated encryption: AES-128-CBC + HMAC-SHA256), and only ever shown
   masked to the last four digits.
"""

import secrets
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet
from jose import jwt
from passlib.context import CryptContext

from bankcards.config import settings


CARD_NUMBER_LENGTH = 16


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2)
# ---------------------------------------------------------------------------

# deprecated="auto" lets passlib re-verify old hashes if the scheme ever changes
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """Hash a plaintext password using Argon2id."""
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a stored Argon2 hash (constant time)."""
    return pwd_context.verify(plain_password, hashed_password)


# ---------------------------------------------------------------------------
# 2. JWT Tokens
# ---------------------------------------------------------------------------


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to encode (must include "sub", the user id as a string).
        expires_delta: Optional custom lifetime. Defaults to
                       ACCESS_TOKEN_EXPIRE_MINUTES from settings.

    Returns:
        An encoded JWT string.
    """
    to_encode = data.copy()
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": datetime.now(timezone.utc) + lifetime})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT access token.

    Raises:
        JWTError: If the token is expired, tampered with, or invalid.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


# ---------------------------------------------------------------------------
# 3. Card numbers
# ---------------------------------------------------------------------------

# Fernet keys are URL-safe base64-encoded 32-byte keys
_fernet = Fernet(settings.CARD_ENCRYPTION_KEY.encode())


def generate_card_number() -> str:
    """Generate a random 16-digit card number from a CSPRNG."""
    return "".join(str(secrets.randbelow(10)) for _ in range(CARD_NUMBER_LENGTH))


def mask_card_number(last_four: str) -> str:
    """Render the display form of a card number from its last four digits."""
    return f"**** **** **** {last_four}"


def encrypt_value(plaintext: str) -> bytes:
    """Encrypt a sensitive string (a card number) for storage."""
    return _fernet.encrypt(plaintext.encode())


def decrypt_value(ciphertext: bytes) -> str:
    """
    Decrypt a Fernet-encrypted value back to plaintext.

    Raises:
        cryptography.fernet.InvalidToken: If the data is corrupted or
            the encryption key doesn't match.
    """
    return _fernet.decrypt(ciphertext).decode()
