"""
Media asset reference.

Upload and integrity verification live outside the engine; only the
verification status is consumed here.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, Float

from rapbattle.orm.base import BaseModel
from rapbattle.core.db_types import ValueEnum


class MediaStatus(PyEnum):
    UPLOADING = "uploading"
    VERIFYING = "verifying"
    READY = "ready"
    FAILED = "failed"


class MediaAsset(BaseModel):
    __tablename__ = "media_assets"

    owner_id = Column(Integer, nullable=False, index=True)
    storage_key = Column(String(512), nullable=False)
    mime = Column(String(64), nullable=True)
    duration_sec = Column(Float, nullable=True)
    status = Column(
        ValueEnum(MediaStatus, "media_status"),
        nullable=False,
        default=MediaStatus.UPLOADING
    )

    @property
    def is_ready(self) -> bool:
        return self.status == MediaStatus.READY
