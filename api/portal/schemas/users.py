from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from portal.core.security import MAX_PASSWORD_BYTES, password_fits_bcrypt

UserRole = Literal["admin", "employer", "candidate"]
RegistrationRole = Literal["employer", "candidate"]


class RegisterRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(min_length=6, max_length=72)
    role: RegistrationRole
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    company: str | None = Field(default=None, max_length=200)

    @field_validator("password")
    @classmethod
    def check_password_bytes(cls, value: str) -> str:
        if not password_fits_bcrypt(value):
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
        return value


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(min_length=1, max_length=72)


class UserOut(BaseModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    company: str | None = None
    role: UserRole
    is_banned: bool = False
    created_at: datetime
    updated_at: datetime


class AuthOut(BaseModel):
    message: str
    token: str
    user: UserOut
