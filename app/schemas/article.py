from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ArticleForm(BaseModel):
    name: str
    text: str
    alt: str
    url: str
    category: str
    likes: Optional[int] = None


class ArticleResponse(BaseModel):
    id: int
    name: str
    text: str
    image: str
    thumbnail: Optional[str]
    alt: str
    url: str
    category: str
    likes: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
