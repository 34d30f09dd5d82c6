import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from upload_service.core.config import Settings
from upload_service.core.errors import (
    AlreadyFinalizedError,
    FinalizeConflictError,
    NotFoundError,
    NotReadyError,
    ValidationError,
)
from upload_service.models import UploadSession, VideoRecord, VideoStatus
from upload_service.services.log_publisher import LogPublisher
from upload_service.services.metadata import VideoMetadata

logger = logging.getLogger(__name__)

PERMLINK_ALPHABET = string.ascii_lowercase + string.digits
PERMLINK_LENGTH = 8

# called with (video_id, upload_id) once bytes and video record both exist
Dispatcher = Callable[[UUID, str], None]


class UploadSessionTracker:
    """
    upload-first flow: init -> transport upload -> transport callback -> finalize.
    the legacy prepare flow creates the video up front and dispatches on the
    transport callback instead.
    """

    def __init__(
        self,
        settings: Settings,
        session: Session,
        dispatch: Optional[Dispatcher] = None,
        publisher: Optional[LogPublisher] = None,
    ):
        self.session = session
        self.ttl = timedelta(hours=settings.UPLOAD_SESSION_TTL_HOURS)
        self.tus_endpoint = settings.TUS_ENDPOINT
        self.dispatch = dispatch
        self.publisher = publisher

    def _publish(self, level, message, metadata=None):
        if self.publisher:
            self.publisher.publish('upload', level, message, metadata)

    def _dispatch(self, video_id: UUID, upload_id: str):
        if not self.dispatch:
            return
        try:
            self.dispatch(video_id, upload_id)
        except Exception as e:
            # the video stays "uploaded"; it is not lost, just not handed off yet
            logger.error(f"failed to dispatch video {video_id} to encoder: {e}", exc_info=True)
            self._publish('ERROR', f'dispatch failed for video {video_id}: {e}')

    def _new_permlink(self) -> str:
        for _ in range(10):
            permlink = "".join(secrets.choice(PERMLINK_ALPHABET) for _ in range(PERMLINK_LENGTH))
            exists = self.session.exec(
                select(VideoRecord).where(VideoRecord.permlink == permlink)
            ).first()
            if not exists:
                return permlink
        raise RuntimeError("could not generate a unique permlink")

    def init(
        self,
        owner: str,
        original_filename: str,
        declared_size: Optional[int] = None,
        declared_duration: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> UploadSession:
        if not original_filename or not original_filename.strip():
            raise ValidationError("filename is required")
        if declared_size is not None and declared_size < 0:
            raise ValidationError("size must not be negative")
        if declared_duration is not None and declared_duration < 0:
            raise ValidationError("duration must not be negative")

        now = now or datetime.utcnow()
        upload = UploadSession(
            upload_id=str(uuid4()),
            owner=owner,
            original_filename=original_filename.strip(),
            declared_size=declared_size,
            declared_duration=declared_duration,
            created=now,
            expires=now + self.ttl,
        )
        self.session.add(upload)
        self.session.commit()
        self.session.refresh(upload)
        logger.info(f"upload session {upload.upload_id} created for {owner}")
        return upload

    def get(self, upload_id: str, owner: Optional[str] = None, now: Optional[datetime] = None) -> UploadSession:
        """fetch a live session; expired unfinalized sessions are reaped on read"""
        upload = self.session.get(UploadSession, upload_id)
        if not upload or (owner is not None and upload.owner != owner):
            raise NotFoundError("upload session not found")
        if upload.is_expired(now):
            logger.info(f"reaping expired upload session {upload_id} on read")
            self.session.delete(upload)
            self.session.commit()
            raise NotFoundError("upload session expired")
        return upload

    def mark_transport_complete(
        self,
        upload_id: str,
        tus_upload_id: Optional[str] = None,
        storage_path: Optional[str] = None,
        size: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> UploadSession:
        """driven by the transport's post-finish hook, never by the client"""
        upload = self.get(upload_id, now=now)
        if upload.tus_completed:
            return upload

        upload.tus_completed = True
        upload.tus_upload_id = tus_upload_id
        upload.storage_path = storage_path
        upload.received_size = size
        self.session.add(upload)
        self.session.commit()
        self.session.refresh(upload)
        logger.info(f"transport finished for upload {upload_id}")

        # legacy flow: the video already exists, hand it off now
        if upload.finalized and upload.video_id:
            self._dispatch(upload.video_id, upload_id)
        return upload

    def mark_abandoned(self, upload_id: str) -> bool:
        """client aborted the transfer; not an error, the reaper cleans up"""
        upload = self.session.get(UploadSession, upload_id)
        if not upload:
            return False
        upload.abandoned = True
        self.session.add(upload)
        self.session.commit()
        logger.info(f"upload {upload_id} abandoned by client")
        return True

    def _new_video(self, owner: str, upload: UploadSession, metadata: VideoMetadata) -> VideoRecord:
        return VideoRecord(
            owner=owner,
            permlink=self._new_permlink(),
            status=VideoStatus.UPLOADED.value,
            title=metadata.title,
            description=metadata.description,
            tags=metadata.tags,
            community=metadata.community.name if metadata.community else None,
            decline_rewards=metadata.decline_rewards,
            original_filename=upload.original_filename,
            size=upload.received_size or upload.declared_size,
            duration=upload.declared_duration,
            upload_id=upload.upload_id,
        )

    def finalize(
        self,
        upload_id: str,
        owner: str,
        metadata: VideoMetadata,
        now: Optional[datetime] = None,
    ) -> VideoRecord:
        upload = self.get(upload_id, owner=owner, now=now)
        if upload.abandoned:
            raise ValidationError("upload was aborted")

        # check-and-set so at most one caller gets to create the video
        claimed = self.session.execute(
            update(UploadSession)
            .where(
                UploadSession.upload_id == upload_id,
                UploadSession.finalized == False,  # noqa: E712
                UploadSession.tus_completed == True,  # noqa: E712
            )
            .values(finalized=True)
        ).rowcount

        if claimed != 1:
            self.session.rollback()
            self.session.refresh(upload)
            if upload.finalized:
                raise AlreadyFinalizedError("upload already finalized")
            raise NotReadyError("TUS upload not completed yet")

        video = self._new_video(owner, upload, metadata)
        self.session.add(video)
        try:
            self.session.flush()
            upload.video_id = video.id
            upload.finalized = True
            self.session.add(upload)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            # the rollback also undid our claim; only a committed claim means a duplicate
            self.session.refresh(upload)
            if upload.finalized:
                logger.warning(f"duplicate finalize for upload {upload_id}: {e}")
                raise AlreadyFinalizedError("upload already finalized") from e
            logger.warning(f"finalize conflict for upload {upload_id}, claim released: {e}")
            raise FinalizeConflictError("upload could not be finalized, please retry") from e

        self.session.refresh(video)
        logger.info(f"upload {upload_id} finalized as video {video.id} ({video.permlink})")
        self._publish('SUCCESS', f'video created: {video.title}', {
            "video_id": str(video.id),
            "owner": owner,
            "permlink": video.permlink,
        })

        self._dispatch(video.id, upload_id)
        return video

    def prepare(
        self,
        owner: str,
        original_filename: str,
        metadata: VideoMetadata,
        declared_size: Optional[int] = None,
        declared_duration: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[VideoRecord, UploadSession]:
        """legacy combined create: video record first, bytes afterwards"""
        upload = self.init(owner, original_filename, declared_size, declared_duration, now=now)
        video = self._new_video(owner, upload, metadata)
        self.session.add(video)
        self.session.flush()
        upload.video_id = video.id
        upload.finalized = True
        self.session.add(upload)
        self.session.commit()
        self.session.refresh(video)
        self.session.refresh(upload)
        logger.info(f"prepared video {video.id} ({video.permlink}) for upload {upload.upload_id}")
        return video, upload

    def reap_expired(self, now: Optional[datetime] = None) -> int:
        """delete expired sessions that never finalized; finalized ones belong to their video"""
        now = now or datetime.utcnow()
        expired = self.session.exec(
            select(UploadSession).where(
                UploadSession.finalized == False,  # noqa: E712
                UploadSession.expires < now,
            )
        ).all()
        for upload in expired:
            self.session.delete(upload)
        self.session.commit()

        if expired:
            logger.info(f"reaped {len(expired)} expired upload sessions")
            self._publish('INFO', f'reaped {len(expired)} expired upload sessions')
        return len(expired)
