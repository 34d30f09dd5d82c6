from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel, Field
from typing import Optional


class UploadSession(SQLModel, table=True):
    __tablename__ = "upload_sessions"
    upload_id: str = Field(primary_key=True)
    owner: str = Field(index=True)
    original_filename: str
    declared_size: Optional[int] = Field(default=None, nullable=True)
    declared_duration: Optional[float] = Field(default=None, nullable=True)
    tus_completed: bool = Field(default=False, index=True)
    tus_upload_id: Optional[str] = Field(default=None, nullable=True)  # transport-side file id
    storage_path: Optional[str] = Field(default=None, nullable=True)  # where the transport wrote the bytes
    received_size: Optional[int] = Field(default=None, nullable=True)
    finalized: bool = Field(default=False, index=True)
    abandoned: bool = Field(default=False)
    video_id: Optional[UUID] = Field(default=None, nullable=True, index=True)
    created: datetime = Field(default_factory=datetime.utcnow, index=True)
    expires: datetime = Field(index=True)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """expired sessions are only reclaimable while not finalized"""
        now = now or datetime.utcnow()
        return not self.finalized and self.expires < now

    def to_dict(self) -> dict:
        return {
            "upload_id": self.upload_id,
            "owner": self.owner,
            "original_filename": self.original_filename,
            "declared_size": self.declared_size,
            "declared_duration": self.declared_duration,
            "tus_completed": self.tus_completed,
            "finalized": self.finalized,
            "abandoned": self.abandoned,
            "video_id": str(self.video_id) if self.video_id else None,
            "created": self.created.isoformat() if self.created else None,
            "expires": self.expires.isoformat() if self.expires else None,
        }
