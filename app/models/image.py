from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.core.database import Base


class Image(Base):
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, index=True)
    # client-chosen reference, unique across all galleries
    url = Column(String(250), unique=True, index=True, nullable=False)
    # stored filename in the images directory
    name = Column(String(250), unique=True, nullable=False)
    thumbnail = Column(String(250), nullable=True)
    description = Column(String(5000), nullable=False)
    gallery_id = Column(Integer, ForeignKey("galleries.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    gallery = relationship("Gallery", back_populates="images")

    @property
    def gallery_name(self) -> Optional[str]:
        return self.gallery.name if self.gallery else None
