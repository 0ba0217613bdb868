from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from food_ordering.models.enums import UserRole

# Admins are created by the bootstrap tooling, never through public sign-up.
SELF_REGISTER_ROLES = frozenset({UserRole.CUSTOMER, UserRole.RESTAURANT_OWNER})


class RegisterPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    role: Optional[UserRole] = None

    @field_validator("role")
    @classmethod
    def _self_service_role(cls, value: Optional[UserRole]) -> Optional[UserRole]:
        if value is not None and value not in SELF_REGISTER_ROLES:
            raise ValueError("Admin accounts cannot be self-registered")
        return value


class LoginPayload(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshPayload(BaseModel):
    refresh_token: str = Field(..., min_length=1)
