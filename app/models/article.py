from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text

from app.core.database import Base


class Article(Base):
    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(250), unique=True, index=True, nullable=False)
    text = Column(Text, nullable=False)
    image = Column(String(250), unique=True, nullable=False)
    thumbnail = Column(String(250), nullable=True)
    alt = Column(String(250), nullable=False)
    url = Column(String(250), nullable=False)
    category = Column(String(250), nullable=False)
    likes = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
