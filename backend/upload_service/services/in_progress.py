from typing import List

from sqlmodel import Session, select

from upload_service.core.config import Settings
from upload_service.models import VideoRecord
from upload_service.models.videos import IN_PROGRESS_STATUSES
from upload_service.services.job_tracker import get_job_for_video
from upload_service.services.status_reconciler import reconcile

SUMMARY_BUCKETS = ("queued", "encoding", "finishing", "failed")


def list_in_progress(session: Session, settings: Settings, owner: str) -> dict:
    """
    newest in-flight videos for an owner, each run through the reconciler,
    plus a tally by coarse phase. read-only, safe at any poll rate.
    """
    videos: List[VideoRecord] = session.exec(
        select(VideoRecord)
        .where(VideoRecord.owner == owner)
        .where(VideoRecord.status.in_([s.value for s in IN_PROGRESS_STATUSES]))
        .order_by(VideoRecord.created.desc())
        .limit(settings.IN_PROGRESS_LIMIT)
    ).all()

    summary = {bucket: 0 for bucket in SUMMARY_BUCKETS}
    items = []
    total_progress = 0.0

    for video in videos:
        job = get_job_for_video(session, video)
        view = reconcile(video, job)
        summary[view.coarse_phase] += 1
        total_progress += view.progress

        items.append({
            "video_id": str(video.id),
            "permlink": video.permlink,
            "title": video.title,
            "status": video.status,
            "encoding_progress": video.encoding_progress,
            "created": video.created.isoformat() if video.created else None,
            "job_id": str(job.id) if job else None,
            "job_status": job.status if job else None,
            "state": view.to_dict(),
        })

    summary["averageProgress"] = round(total_progress / len(items), 1) if items else 0

    return {
        "videos": items,
        "count": len(items),
        "summary": summary,
        "poll_interval_ms": settings.POLL_INTERVAL_MS,
    }


def get_video_status(session: Session, settings: Settings, video: VideoRecord) -> dict:
    """single-video poll payload: the record, its job if any, and the merged view"""
    job = get_job_for_video(session, video)
    view = reconcile(video, job)
    return {
        "video": video.to_dict(),
        "job": job.to_dict() if job else None,
        "state": view.to_dict(),
        "poll_interval_ms": settings.POLL_INTERVAL_MS,
    }
