from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ImageForm(BaseModel):
    url: str
    description: str
    gallery: int


class ImageResponse(BaseModel):
    id: int
    url: str
    name: str
    thumbnail: Optional[str]
    description: str
    gallery_id: int
    gallery_name: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
