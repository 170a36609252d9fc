from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class UserCreate(BaseModel):
    name: str
    email: str
    password: str


class UserUpdate(BaseModel):
    name: str
    email: str
    password: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    image: Optional[str]
    role: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MessageRequest(BaseModel):
    email: str
    subject: str
    text: str
