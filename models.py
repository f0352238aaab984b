from sqlalchemy import Column, Integer, String, TIMESTAMP
from sqlalchemy.sql import func

from database import Base


# ------------------
# Songs
# ------------------
class Song(Base):
    __tablename__ = "songs"
    id = Column(String(36), primary_key=True, index=True)      # uuid4, also the public stream id
    name = Column(String, nullable=False)
    duration_seconds = Column(Integer, nullable=False, default=0)
    bucket_folder = Column(String, nullable=False, default="")  # slug, object key or legacy storage URL
    created_at = Column(TIMESTAMP, server_default=func.now())
