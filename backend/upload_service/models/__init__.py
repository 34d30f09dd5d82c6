from .videos import VideoRecord, VideoStatus
from .uploads import UploadSession
from .jobs import EncodingJob
from .pins import PinObservation

__all__ = ["VideoRecord", "VideoStatus", "UploadSession", "EncodingJob", "PinObservation"]
