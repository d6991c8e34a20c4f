"""
Pydantic schemas for authentication endpoints (registration and login).

Pydantic validates incoming data automatically; a malformed body is rejected
with a 400 before our code runs.
"""

from typing import Annotated

from pydantic import BaseModel, EmailStr, Field

# Field types shared with the admin user-management schemas
FullName = Annotated[str, Field(min_length=2, max_length=100)]
PhoneNumber = Annotated[str, Field(pattern=r"^\+?\d{7,20}$")]
Password = Annotated[str, Field(min_length=8, max_length=64)]


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""
    full_name: FullName
    email: EmailStr
    phone_number: PhoneNumber | None = None
    password: Password


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: EmailStr
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    """Response body for a successful login — contains the JWT."""
    token: str
    token_type: str = "bearer"


class UserPublicResponse(BaseModel):
    """Response body for a successful registration."""
    full_name: str
    email: str
    phone_number: str | None

    model_config = {"from_attributes": True}
