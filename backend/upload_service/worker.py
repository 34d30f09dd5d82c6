import logging
import os
import time
from uuid import UUID

from sqlmodel import Session

from upload_service.core.config import get_settings
from upload_service.core.db import engine
from upload_service.core.errors import retry_with_backoff
from upload_service.models import UploadSession, VideoRecord, VideoStatus
from upload_service.services.ipfs import IpfsClient
from upload_service.services.job_tracker import advance_video_status, create_encoding_job
from upload_service.services.log_publisher import LogPublisher
from upload_service.services.upload_sessions import UploadSessionTracker

logger = logging.getLogger(__name__)


@retry_with_backoff(max_retries=3, initial_delay=5.0)
def _add_to_ipfs(ipfs: IpfsClient, path: str, filename: str) -> str:
    with open(path, "rb") as f:
        return ipfs.add(f, filename)


def dispatch_video(video_id: str, upload_id: str):
    """
    move an uploaded video onto ipfs and register it with the encoder.
    status goes uploaded -> encoding_ipfs here; the encoder drives the rest.
    """
    settings = get_settings()
    ipfs = IpfsClient(settings)
    publisher = LogPublisher(settings.REDIS_URL)

    with Session(engine) as session:
        video = session.get(VideoRecord, UUID(video_id))
        upload = session.get(UploadSession, upload_id)
        if not video:
            logger.warning(f"dispatch skipped, video {video_id} no longer exists")
            return
        if VideoStatus(video.status) != VideoStatus.UPLOADED:
            logger.info(f"dispatch skipped, video {video_id} already {video.status}")
            return

        try:
            if not upload or not upload.storage_path:
                raise FileNotFoundError(f"no stored file recorded for upload {upload_id}")
            if not os.path.exists(upload.storage_path):
                raise FileNotFoundError(f"uploaded file missing: {upload.storage_path}")

            advance_video_status(session, video, VideoStatus.ENCODING_IPFS)
            publisher.publish('worker', 'INFO', f'adding {video.permlink} to ipfs...')

            cid = _add_to_ipfs(ipfs, upload.storage_path, upload.original_filename)
            video.filename = f"ipfs://{cid}"
            video.size = os.path.getsize(upload.storage_path)
            session.add(video)
            session.commit()
            session.refresh(video)

            job = create_encoding_job(session, video, input_cid=cid)
            logger.info(f"video {video_id} pinned as {cid}, encoding job {job.id} queued")
            publisher.publish('worker', 'SUCCESS', f'encoding job queued for {video.permlink}', {
                "video_id": video_id,
                "cid": cid,
                "job_id": str(job.id),
            })
        except Exception as e:
            logger.error(f"dispatch failed for video {video_id}: {e}", exc_info=True)
            publisher.publish('worker', 'ERROR', f'dispatch failed for {video_id}: {e}')
            session.rollback()
            advance_video_status(session, video, VideoStatus.FAILED)
            raise


def reap_upload_sessions() -> int:
    """one sweep of expired, never-finalized upload sessions"""
    settings = get_settings()
    with Session(engine) as session:
        tracker = UploadSessionTracker(settings, session, publisher=LogPublisher(settings.REDIS_URL))
        return tracker.reap_expired()


def upload_reaper_poller():
    """background loop that reaps expired upload sessions"""
    interval = get_settings().REAPER_INTERVAL_SECONDS
    logger.info(f"upload reaper started, sweeping every {interval}s")

    while True:
        try:
            reaped = reap_upload_sessions()
            logger.debug(f"reaper sweep done, {reaped} sessions removed")
        except Exception as e:
            logger.error(f"upload reaper sweep error: {e}", exc_info=True)
        time.sleep(interval)


if __name__ == "__main__":
    from redis import Redis
    from rq import Worker, Queue
    from upload_service.core.logging_config import setup_logging

    settings = get_settings()
    setup_logging(settings)

    redis_conn = Redis.from_url(settings.REDIS_URL)
    queue = Queue(connection=redis_conn)

    logger.info(f"starting rq worker, listening on queue: {queue.name}")
    worker = Worker([queue], connection=redis_conn)
    worker.work()
