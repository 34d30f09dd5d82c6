from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4
from sqlalchemy import JSON, Column, Index
from sqlmodel import SQLModel, Field
from typing import List, Optional


class VideoStatus(str, Enum):
    UPLOADED = "uploaded"
    ENCODING_IPFS = "encoding_ipfs"
    ENCODING_PREPARING = "encoding_preparing"
    ENCODING_PROGRESS = "encoding_progress"
    ENCODING_COMPLETED = "encoding_completed"
    PUBLISHED = "published"
    PUBLISH_MANUAL = "publish_manual"
    FAILED = "failed"
    ENCODING_FAILED = "encoding_failed"


# position along the pipeline; both publish outcomes share the last slot
PIPELINE_ORDER = {
    VideoStatus.UPLOADED: 0,
    VideoStatus.ENCODING_IPFS: 1,
    VideoStatus.ENCODING_PREPARING: 2,
    VideoStatus.ENCODING_PROGRESS: 3,
    VideoStatus.ENCODING_COMPLETED: 4,
    VideoStatus.PUBLISHED: 5,
    VideoStatus.PUBLISH_MANUAL: 5,
}

PUBLISHED_STATUSES = {VideoStatus.PUBLISHED, VideoStatus.PUBLISH_MANUAL}
FAILED_STATUSES = {VideoStatus.FAILED, VideoStatus.ENCODING_FAILED}
TERMINAL_STATUSES = PUBLISHED_STATUSES | FAILED_STATUSES
IN_PROGRESS_STATUSES = [
    VideoStatus.UPLOADED,
    VideoStatus.ENCODING_IPFS,
    VideoStatus.ENCODING_PREPARING,
    VideoStatus.ENCODING_PROGRESS,
]


def can_transition(current: VideoStatus, new: VideoStatus) -> bool:
    """
    forward-only check for a status write.
    terminal statuses absorb everything; failure is reachable from any
    non-terminal status; otherwise the new status must be strictly later.
    """
    current = VideoStatus(current)
    new = VideoStatus(new)
    if current in TERMINAL_STATUSES:
        return False
    if new in FAILED_STATUSES:
        return True
    return PIPELINE_ORDER[new] > PIPELINE_ORDER[current]


class VideoRecord(SQLModel, table=True):
    __tablename__ = "videos"
    __table_args__ = (Index("ix_videos_owner_created", "owner", "created"),)
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner: str = Field(index=True)
    permlink: str = Field(unique=True, index=True, max_length=8)
    status: str = Field(default=VideoStatus.UPLOADED.value, index=True)
    title: str
    description: str = Field(default="")
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    community: Optional[str] = Field(default=None, nullable=True)
    decline_rewards: bool = Field(default=False)
    thumbnail: Optional[str] = Field(default=None, nullable=True)  # ipfs://<cid>
    filename: Optional[str] = Field(default=None, nullable=True)  # content reference, ipfs://<cid>
    original_filename: Optional[str] = Field(default=None, nullable=True)
    size: Optional[int] = Field(default=None, nullable=True)
    duration: Optional[float] = Field(default=None, nullable=True)  # seconds
    encoding_progress: int = Field(default=0)  # advisory, 0-100
    upload_id: Optional[str] = Field(default=None, nullable=True, unique=True)
    job_id: Optional[str] = Field(default=None, nullable=True, index=True)
    created: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated: datetime = Field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "owner": self.owner,
            "permlink": self.permlink,
            "status": VideoStatus(self.status).value,
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags or []),
            "community": self.community,
            "declineRewards": self.decline_rewards,
            "thumbnail": self.thumbnail,
            "filename": self.filename,
            "originalFilename": self.original_filename,
            "size": self.size,
            "duration": self.duration,
            "encodingProgress": self.encoding_progress,
            "job_id": self.job_id,
            "created": self.created.isoformat() if self.created else None,
        }
