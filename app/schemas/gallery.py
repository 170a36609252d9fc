from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class GalleryForm(BaseModel):
    name: str
    author: str


class GalleryResponse(BaseModel):
    id: int
    name: str
    author: str
    cover: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
