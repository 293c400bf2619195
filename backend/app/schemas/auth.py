# app/schemas/auth.py
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    role: str = Field(min_length=1, max_length=20)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)


class IdentityOut(BaseModel):
    id: str
    email: str
    role: str
    first_name: str | None = None
    last_name: str | None = None
    is_verified: bool

    model_config = ConfigDict(from_attributes=True)


class RegisterOut(BaseModel):
    message: str
    user: IdentityOut
    needs_verification: bool = True
    # True/False once delivery finished; None when queued for background delivery.
    email_sent: bool | None
    email_delivery: Literal["sent", "failed", "queued"]


class VerifyEmailIn(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=4, max_length=12)


class ResendOtpIn(BaseModel):
    email: EmailStr


class ResendOtpOut(BaseModel):
    message: str


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class TokenOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: IdentityOut
    # Hand-off URL into the client app for this role (None: stay put).
    redirect_url: str | None = None


class RefreshIn(BaseModel):
    refresh_token: str = Field(min_length=1)


class ForgotPasswordIn(BaseModel):
    email: EmailStr


class ResetPasswordIn(BaseModel):
    token: str = Field(min_length=1)
    password: str = Field(min_length=1, max_length=128)


class MessageOut(BaseModel):
    message: str


class PrincipalOut(BaseModel):
    user_id: str | None = None
    role: str | None = None
    email: str | None = None
    is_verified: bool = False
    is_authenticated: bool = False


class HandoffOut(BaseModel):
    redirect_url: str | None = None
