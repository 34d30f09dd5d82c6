from fastapi import Depends
from sqlmodel import Session

from upload_service.core.config import Settings, get_settings
from upload_service.core.db import get_session
from upload_service.services.ipfs import IpfsClient
from upload_service.services.log_publisher import LogPublisher
from upload_service.services.pin_manager import PinManager
from upload_service.services.queue import TaskQueue
from upload_service.services.storage_stats import StorageStatsCollector
from upload_service.services.upload_sessions import Dispatcher, UploadSessionTracker


def get_ipfs_client(settings: Settings = Depends(get_settings)) -> IpfsClient:
    return IpfsClient(settings)


def get_log_publisher(settings: Settings = Depends(get_settings)) -> LogPublisher:
    return LogPublisher(settings.REDIS_URL)


def get_dispatcher(settings: Settings = Depends(get_settings)) -> Dispatcher:
    return TaskQueue(settings).dispatch_video


def get_stats_collector(
    settings: Settings = Depends(get_settings),
    ipfs: IpfsClient = Depends(get_ipfs_client),
) -> StorageStatsCollector:
    return StorageStatsCollector(settings, ipfs)


def get_pin_manager(
    settings: Settings = Depends(get_settings),
    ipfs: IpfsClient = Depends(get_ipfs_client),
    session: Session = Depends(get_session),
    publisher: LogPublisher = Depends(get_log_publisher),
) -> PinManager:
    return PinManager(settings, ipfs, session, publisher)


def get_upload_tracker(
    settings: Settings = Depends(get_settings),
    session: Session = Depends(get_session),
    dispatch: Dispatcher = Depends(get_dispatcher),
    publisher: LogPublisher = Depends(get_log_publisher),
) -> UploadSessionTracker:
    return UploadSessionTracker(settings, session, dispatch, publisher)
