from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    userId: int
    userToken: str
    token_type: str = "bearer"


class AvatarResponse(BaseModel):
    name: str
    image: Optional[str]
    role: str

    class Config:
        from_attributes = True


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    password: str


class HumanCheckRequest(BaseModel):
    """Widget token, optionally sent together with the login form it guards."""

    token: Optional[str] = Field(None, description="Response token produced by the reCAPTCHA widget")
    email: Optional[str] = None
    password: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class MutationResponse(BaseModel):
    message: str
    id: int
