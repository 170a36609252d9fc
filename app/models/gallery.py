from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from app.core.database import Base


class Gallery(Base):
    __tablename__ = "galleries"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(250), unique=True, index=True, nullable=False)
    author = Column(String(250), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    images = relationship(
        "Image",
        back_populates="gallery",
        cascade="all, delete-orphan",
        order_by="Image.id",
    )

    @property
    def cover(self) -> Optional[str]:
        """Stored name of the first image, used as the gallery cover."""
        if not self.images:
            return None
        first = self.images[0]
        return first.thumbnail or first.name
