import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlmodel import Session, select

from upload_service.models import EncodingJob, VideoRecord, VideoStatus
from upload_service.models.jobs import JOB_STATUSES
from upload_service.models.videos import can_transition
from upload_service.core.errors import ValidationError

logger = logging.getLogger(__name__)

JOB_TERMINAL_STATUSES = {"complete", "completed", "failed", "cancelled"}


def advance_video_status(
    session: Session,
    video: VideoRecord,
    status: VideoStatus,
    encoding_progress: Optional[int] = None,
) -> bool:
    """
    write a status if it moves the pipeline forward (or into failure).
    late writes from an earlier stage are dropped and reported as False.
    """
    status = VideoStatus(status)
    current = VideoStatus(video.status)
    changed = False

    if current != status:
        if not can_transition(current, status):
            logger.info(f"dropping stale status write for video {video.id}: {current.value} -> {status.value}")
            return False
        video.status = status.value
        changed = True

    if encoding_progress is not None and VideoStatus(video.status) not in (
        VideoStatus.FAILED, VideoStatus.ENCODING_FAILED
    ):
        # advisory, but never allowed to go backwards
        progress = min(max(int(encoding_progress), 0), 100)
        if progress > video.encoding_progress:
            video.encoding_progress = progress
            changed = True

    if changed:
        video.updated = datetime.utcnow()
        session.add(video)
        session.commit()
        session.refresh(video)
    return changed


def create_encoding_job(session: Session, video: VideoRecord, input_cid: str) -> EncodingJob:
    """register a queued job for the encoder and link it to the video"""
    job = EncodingJob(video_id=video.id, status="queued", input_cid=input_cid)
    session.add(job)
    video.job_id = str(job.id)
    video.updated = datetime.utcnow()
    session.add(video)
    session.commit()
    session.refresh(job)
    return job


def get_job_for_video(session: Session, video: VideoRecord) -> Optional[EncodingJob]:
    """the video's linked job, else its most recent one; None if the encoder has nothing"""
    if video.job_id:
        try:
            job = session.get(EncodingJob, UUID(video.job_id))
        except ValueError:
            job = None
        if job:
            return job
    return session.exec(
        select(EncodingJob)
        .where(EncodingJob.video_id == video.id)
        .order_by(EncodingJob.created_at.desc())
    ).first()


def apply_job_report(
    session: Session,
    job: EncodingJob,
    status: str,
    pct: Optional[float] = None,
    download_pct: Optional[float] = None,
    error: Optional[str] = None,
) -> EncodingJob:
    """record an encoder progress report and carry it onto the video"""
    if status not in JOB_STATUSES:
        raise ValidationError(f"unknown job status: {status}")

    if job.status in JOB_TERMINAL_STATUSES and status != job.status:
        logger.info(f"ignoring report for finished job {job.id}: {job.status} -> {status}")
        return job

    job.status = status
    if pct is not None:
        job.pct = min(max(float(pct), 0.0), 100.0)
    if download_pct is not None:
        job.download_pct = min(max(float(download_pct), 0.0), 100.0)
    if error:
        job.error_message = error[:500]
    job.updated_at = datetime.utcnow()
    session.add(job)
    session.commit()
    session.refresh(job)

    video = session.get(VideoRecord, job.video_id)
    if not video:
        logger.warning(f"job {job.id} reported for missing video {job.video_id}")
        return job

    if status == "running":
        if job.download_pct < 100:
            advance_video_status(session, video, VideoStatus.ENCODING_PREPARING)
        else:
            advance_video_status(session, video, VideoStatus.ENCODING_PROGRESS, encoding_progress=int(job.pct))
    elif status in ("complete", "completed"):
        advance_video_status(session, video, VideoStatus.ENCODING_COMPLETED, encoding_progress=100)
    elif status in ("failed", "cancelled"):
        advance_video_status(session, video, VideoStatus.ENCODING_FAILED)

    return job


def mark_published(session: Session, video: VideoRecord, manual: bool = False) -> bool:
    """publisher callback; the only path to the terminal success statuses"""
    status = VideoStatus.PUBLISH_MANUAL if manual else VideoStatus.PUBLISHED
    return advance_video_status(session, video, status, encoding_progress=100)
