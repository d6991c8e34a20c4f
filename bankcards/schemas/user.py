"""
Pydantic schemas for admin user management.

hashed_password is never included in any response schema.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr

from bankcards.models.user import UserRole
from bankcards.schemas.auth import FullName, Password, PhoneNumber


class UserCreateRequest(BaseModel):
    """Request body for POST /users."""
    full_name: FullName
    email: EmailStr
    phone_number: PhoneNumber | None = None
    password: Password
    role: UserRole


class UserUpdateRequest(BaseModel):
    """Request body for PUT /users/{id} (all fields optional)."""
    full_name: FullName | None = None
    phone_number: PhoneNumber | None = None
    password: Password | None = None


class UserResponse(BaseModel):
    id: uuid.UUID
    full_name: str
    email: EmailStr
    phone_number: str | None
    role: UserRole
    created_at: datetime

    model_config = {"from_attributes": True}
