import logging
from uuid import UUID

from redis import Redis
from rq import Queue

from upload_service.core.config import Settings

logger = logging.getLogger(__name__)


class TaskQueue:
    """rq queue for background work; redis is connected on first use"""

    def __init__(self, settings: Settings):
        self.redis_url = settings.REDIS_URL
        self._queue = None

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            redis_conn = Redis.from_url(self.redis_url)
            self._queue = Queue(connection=redis_conn)
        return self._queue

    def enqueue(self, func, *args, **kwargs):
        rq_job = self.queue.enqueue(func, *args, **kwargs)
        logger.info(f"queued {func.__name__} as {rq_job.id}")
        return rq_job

    def dispatch_video(self, video_id: UUID, upload_id: str):
        """hand a finished upload to the ipfs/encoder worker"""
        from upload_service.worker import dispatch_video
        return self.enqueue(dispatch_video, str(video_id), upload_id, job_timeout='2h')
