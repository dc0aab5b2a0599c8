from typing import Optional
from datetime import date, datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from locolive.models.enums import Visibility
import uuid

class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(max_length=128)
    name: str = Field(max_length=100)

class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(max_length=128)

class RefreshRequest(BaseModel):
    refresh_token: str

class LogoutRequest(BaseModel):
    refresh_token: str

class GoogleLoginRequest(BaseModel):
    id_token: str

class ForgotPasswordRequest(BaseModel):
    email: EmailStr

class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(max_length=128)

class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(max_length=128)

class EmailChange(BaseModel):
    new_email: EmailStr
    password: str

class PushTokenUpdate(BaseModel):
    push_token: Optional[str] = Field(default=None, max_length=4096)

class PublicUserResponse(BaseModel):
    id: uuid.UUID
    name: str
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    visibility: Visibility = Visibility.PUBLIC

    class Config:
        from_attributes = True

class UserResponse(PublicUserResponse):
    email: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    email_verified: bool = False
    phone_verified: bool = False
    created_at: datetime

class AuthResponse(Token):
    user: UserResponse
    is_new_user: bool = False

class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    bio: Optional[str] = Field(default=None, max_length=500)
    gender: Optional[str] = Field(default=None, max_length=32)
    date_of_birth: Optional[date] = None
    visibility: Optional[Visibility] = None
    avatar_url: Optional[str] = None

    @field_validator("date_of_birth")
    @classmethod
    def validate_date_of_birth(cls, value: Optional[date]) -> Optional[date]:
        if value is None:
            return value

        if value > date.today():
            raise ValueError("date_of_birth cannot be in the future")
        if value < date(1900, 1, 1):
            raise ValueError("date_of_birth is too far in the past")
        return value
