"""
dedicated entry point for the upload session reaper.
runs in its own container alongside the api and rq worker.
"""
import logging
import sys

from upload_service.core.config import get_settings
from upload_service.core.logging_config import setup_logging

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    settings = get_settings()
    setup_logging(settings)
    logger.info("upload reaper worker starting")

    try:
        from upload_service.worker import upload_reaper_poller
        upload_reaper_poller()
    except KeyboardInterrupt:
        logger.info("upload reaper stopped by user")
        sys.exit(0)
    except Exception as e:
        logger.critical(f"fatal error in upload reaper: {e}", exc_info=True)
        sys.exit(1)
