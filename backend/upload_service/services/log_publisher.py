import json
import logging
from datetime import datetime
from typing import Literal, Optional

logger = logging.getLogger(__name__)

LogLevel = Literal['INFO', 'WARNING', 'ERROR', 'SUCCESS', 'DEBUG']
LogSource = Literal['upload', 'storage', 'pipeline', 'worker', 'reaper']

LOG_CHANNEL = 'system_logs'


class LogPublisher:
    """publishes operator-facing events to redis for real-time streaming"""

    def __init__(self, redis_url: Optional[str]):
        self.redis_url = redis_url
        # lazy so the api starts even when redis is down
        self._client = None

    def _get_client(self):
        if self._client is None:
            import redis
            self._client = redis.from_url(self.redis_url)
        return self._client

    def publish(
        self,
        source: LogSource,
        level: LogLevel,
        message: str,
        metadata: Optional[dict] = None
    ):
        if not self.redis_url:
            return

        log_entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "source": source,
            "level": level,
            "message": message,
            "metadata": metadata or {}
        }

        try:
            self._get_client().publish(LOG_CHANNEL, json.dumps(log_entry, default=str))
        except Exception as e:
            # never let the log stream break a request
            logger.warning(f"failed to publish log: {e}")
