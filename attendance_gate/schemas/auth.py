"""
Authentication schemas
"""
from pydantic import BaseModel, Field, field_validator

from attendance_gate.schemas.employee import EmployeeOut, normalize_email, _normalize_password


class LoginRequest(BaseModel):
    """Login request schema"""
    email: str = Field(..., description="Login email")
    password: str = Field(..., description="Password")

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v):
        return v.strip().lower()


class RegisterRequest(BaseModel):
    """Self-registration request (only when ALLOW_REGISTRATION is enabled)"""
    email: str = Field(..., min_length=3, description="Login email")
    name: str = Field(..., min_length=1, description="Display name")
    password: str = Field(..., description="Password")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return normalize_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v):
        v = _normalize_password(v)
        if v is None:
            raise ValueError("Password is required")
        return v


class TokenResponse(BaseModel):
    """Token response schema"""
    access_token: str
    token_type: str = "bearer"
    user: EmployeeOut
