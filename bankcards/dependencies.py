"""
FastAPI dependencies for authentication and authorization.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a chain that enforces both authentication and role-based access:

  get_current_user (JWT -> User)
      ├── require_user  (User -> User)   [USER role]
      └── require_admin (User -> User)   [ADMIN role]

get_current_user is the identity resolver: it turns the bearer token of the
request into the acting user whose id the services scope every query by.

Role-based access control:
  - USER: Card holder endpoints (/cards, /transfer). Every query is scoped to
    the acting user's own cards inside the service layer.
  - ADMIN: User and card management (/users, /admin). Admins never own cards,
    so they are blocked from card holder endpoints outright.
"""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bankcards.database import get_db
from bankcards.models.user import User, UserRole
from bankcards.security import decode_access_token


# Look for the token in the "Authorization: Bearer <token>" header. tokenUrl
# points Swagger UI's "Authorize" button at the login endpoint.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Extract and validate the JWT token, then return the corresponding User.

    Raises:
        HTTPException 401: If the token is invalid or the user doesn't exist.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        user_id_str: str | None = payload.get("sub")
        if user_id_str is None:
            raise credentials_exception
        user_id = uuid.UUID(user_id_str)
    except (JWTError, ValueError):
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    # A deleted user's token must stop working immediately
    if user is None:
        raise credentials_exception

    return user


async def require_user(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require the authenticated user to be a card holder (USER role).

    Raises:
        HTTPException 403: If the user is an admin.
    """
    if user.role != UserRole.USER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Card holder access required",
        )
    return user


async def require_admin(
    user: User = Depends(get_current_user),
) -> User:
    """
    Require the authenticated user to have the ADMIN role.

    Raises:
        HTTPException 403: If the user is not an admin.
    """
    if user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user
