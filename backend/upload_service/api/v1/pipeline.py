"""
callbacks from the external encoder and publisher.
both only ever move a video forward; stale reports are dropped.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from upload_service.core.auth import require_pipeline_token
from upload_service.core.db import get_session
from upload_service.core.errors import NotFoundError
from upload_service.models import EncodingJob, VideoRecord
from upload_service.services.job_tracker import apply_job_report, mark_published

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_pipeline_token)])


class JobProgress(BaseModel):
    pct: Optional[float] = None
    download_pct: Optional[float] = None


class JobReport(BaseModel):
    status: str
    progress: Optional[JobProgress] = None
    error: Optional[str] = None


class PublishRequest(BaseModel):
    manual: bool = False


def _parse_uuid(value: str, what: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise NotFoundError(f"{what} not found")


@router.post("/jobs/{job_id}")
def report_job(job_id: str, report: JobReport, session: Session = Depends(get_session)):
    job = session.get(EncodingJob, _parse_uuid(job_id, "job"))
    if not job:
        raise NotFoundError("job not found")

    progress = report.progress or JobProgress()
    job = apply_job_report(
        session,
        job,
        report.status,
        pct=progress.pct,
        download_pct=progress.download_pct,
        error=report.error,
    )
    video = session.get(VideoRecord, job.video_id)
    return {
        "success": True,
        "data": {
            "job": job.to_dict(),
            "video_status": video.status if video else None,
        },
    }


@router.post("/videos/{video_id}/publish")
def publish_video(video_id: str, req: PublishRequest, session: Session = Depends(get_session)):
    video = session.get(VideoRecord, _parse_uuid(video_id, "video"))
    if not video:
        raise NotFoundError("video not found")

    changed = mark_published(session, video, manual=req.manual)
    if changed:
        logger.info(f"video {video_id} marked {video.status}")
    return {
        "success": True,
        "data": {"video_id": video_id, "status": video.status, "changed": changed},
    }
