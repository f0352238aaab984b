from datetime import datetime
from typing import Optional

from pydantic import BaseModel


# ------------------
# Songs
# ------------------
class SongOut(BaseModel):
    id: str
    name: str
    duration_seconds: int
    bucket_folder: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ------------------
# Tokens
# ------------------
class StreamTokenOut(BaseModel):
    file_id: str
    expires: int
    url: str
