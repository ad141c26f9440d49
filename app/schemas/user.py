"""
============================================================================
RaceFi Backend v1.0.0
User Schemas - Registration, Login, Profile
============================================================================

Reliability Level: STANDARD
Input Constraints: Valid email, password >= 6 characters
Side Effects: None (pure validation)

============================================================================
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


MIN_PASSWORD_LENGTH = 6

MAX_PASSWORD_LENGTH = 72


class UserRole(str, Enum):
    """
    Roles gating API access.

    withdrawer: may confirm and execute withdrawals
    admin: full access, including cancellation and user management
    """
    USER = "user"
    WITHDRAWER = "withdrawer"
    ADMIN = "admin"


class RegisterRequest(BaseModel):
    """Public self-registration. Any requested role is downgraded to user."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)
    role: Optional[str] = None

    @field_validator("email", mode="after")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email", mode="after")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_LENGTH)


class AdminUserUpdate(BaseModel):
    """Fields an admin may change on any user."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None


class UserOut(BaseModel):
    """Public user representation. Never carries the password hash."""

    id: str
    name: str
    email: str
    role: UserRole
    created_at: str


class AuthResponse(BaseModel):
    success: bool = True
    token: str
    refresh_token: str
    user: UserOut
