from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class GoogleLogin(BaseModel):
    token: str = Field(min_length=1)


class ForgotPassword(BaseModel):
    email: str = Field(min_length=1)


class VerifyOTP(BaseModel):
    email: str = Field(min_length=1)
    otp: str = Field(min_length=1)


class ResetPassword(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reset_token: str = Field(min_length=1, alias="resetToken")
    new_password: str = Field(min_length=1, alias="newPassword")


class User(BaseModel):
    id: int
    email: str

    model_config = ConfigDict(from_attributes=True)


class UserProfile(User):
    has_password: bool
    google_linked: bool


class AuthResponse(BaseModel):
    message: str
    token: str
    user: User


class Message(BaseModel):
    message: str


class ResetTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    reset_token: str = Field(alias="resetToken")


class CurrentUser(BaseModel):
    id: int
    email: str
