"""
Authentication service — registration and login business logic.

The router calls these functions and translates the results into HTTP
responses, so the logic can be tested without a web server.

Registration flow:
  1. Check if the email is already registered
  2. Hash the password with Argon2id
  3. Create the User with the USER role (admins are never self-registered)

Login flow:
  1. Look up the user by email
  2. Verify the password against the stored hash
  3. Return a JWT token

Login returns the same error for "wrong password" and "email not found"
to prevent user enumeration.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.exceptions import DuplicateEmailError, InvalidCredentialsError
from bankcards.models.user import User, UserRole
from bankcards.security import hash_password, verify_password, create_access_token

logger = logging.getLogger(__name__)


async def create_account(
    db: AsyncSession,
    full_name: str,
    email: str,
    password: str,
    phone_number: str | None = None,
    role: UserRole = UserRole.USER,
) -> User:
    """
    Persist a new user with a hashed password.

    Shared by self-registration and admin user creation.

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    result = await db.execute(select(User.id).where(User.email == email))
    if result.first() is not None:
        logger.warning("Registration refused: email %s already in use", email)
        raise DuplicateEmailError(email)

    user = User(
        full_name=full_name,
        email=email,
        phone_number=phone_number,
        hashed_password=hash_password(password),
        role=role,
    )
    db.add(user)
    await db.flush()
    return user


async def register(
    db: AsyncSession,
    full_name: str,
    email: str,
    password: str,
    phone_number: str | None = None,
) -> User:
    """
    Register a new card holder.

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    user = await create_account(db, full_name, email, password, phone_number)
    logger.info("User %s registered", user.id)
    return user


async def login(
    db: AsyncSession,
    email: str,
    password: str,
) -> tuple[User, str]:
    """
    Authenticate a user and return a JWT token.

    Returns:
        Tuple of (User instance, JWT token string).

    Raises:
        InvalidCredentialsError: If email doesn't exist or password is wrong.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    # Same error for both cases: no user enumeration
    if user is None or not verify_password(password, user.hashed_password):
        logger.warning("Failed login attempt for %s", email)
        raise InvalidCredentialsError()

    token = create_access_token(data={"sub": str(user.id)})
    logger.info("User %s logged in", user.id)
    return user, token
