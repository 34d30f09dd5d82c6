from datetime import datetime
from uuid import UUID, uuid4
from sqlmodel import SQLModel, Field
from typing import Optional

JOB_STATUSES = {"queued", "running", "complete", "completed", "failed", "cancelled"}


class EncodingJob(SQLModel, table=True):
    """job as reported by the external encoder; read-only to the status views"""
    __tablename__ = "encoding_jobs"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    video_id: UUID = Field(index=True)
    status: str = Field(default="queued", index=True)  # queued, running, complete(d), failed, cancelled
    pct: float = Field(default=0)
    download_pct: float = Field(default=0)
    input_cid: Optional[str] = Field(default=None, nullable=True)
    error_message: Optional[str] = Field(default=None, nullable=True)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "status": self.status,
            "progress": {"pct": self.pct, "download_pct": self.download_pct},
            "error": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
