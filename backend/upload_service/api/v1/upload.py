import logging
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, File, Header, UploadFile
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from upload_service.api.deps import get_ipfs_client, get_upload_tracker
from upload_service.core.auth import require_tus_hook, require_username
from upload_service.core.config import Settings, get_settings
from upload_service.core.db import get_session
from upload_service.core.errors import NotFoundError, UpstreamUnavailableError, ValidationError
from upload_service.models import VideoRecord
from upload_service.services.in_progress import get_video_status, list_in_progress
from upload_service.services.ipfs import IpfsApiError, IpfsClient
from upload_service.services.metadata import normalize_metadata
from upload_service.services.upload_sessions import UploadSessionTracker

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_THUMBNAIL_BYTES = 5 * 1024 * 1024


class InitUploadRequest(BaseModel):
    filename: str
    size: Optional[int] = None
    duration: Optional[float] = None


class VideoMetadataRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Any = None
    description: Any = None
    tags: Any = None
    # bare community name or an object carrying `name`
    community: Any = None
    decline_rewards: bool = Field(default=False, alias="declineRewards")

    def normalized(self):
        return normalize_metadata(
            self.title, self.description, self.tags, self.community, self.decline_rewards
        )


class FinalizeRequest(VideoMetadataRequest):
    upload_id: str


class PrepareRequest(VideoMetadataRequest):
    filename: str
    size: Optional[int] = None
    duration: Optional[float] = None


def _get_owned_video(session: Session, video_id: str, owner: str) -> VideoRecord:
    try:
        video = session.get(VideoRecord, UUID(video_id))
    except ValueError:
        video = None
    if not video or video.owner != owner:
        raise NotFoundError("video not found")
    return video


@router.post("/init")
def init_upload(
    req: InitUploadRequest,
    owner: str = Depends(require_username),
    tracker: UploadSessionTracker = Depends(get_upload_tracker),
):
    """create an upload session before any metadata exists"""
    upload = tracker.init(owner, req.filename, req.size, req.duration)
    return {
        "success": True,
        "data": {
            "upload_id": upload.upload_id,
            "tus_endpoint": tracker.tus_endpoint,
            "expires": upload.expires.isoformat(),
        },
    }


@router.post("/finalize")
def finalize_upload(
    req: FinalizeRequest,
    owner: str = Depends(require_username),
    tracker: UploadSessionTracker = Depends(get_upload_tracker),
):
    """
    create the video from a completed upload.
    409 + retryable while the transport callback hasn't landed yet.
    """
    metadata = req.normalized()
    video = tracker.finalize(req.upload_id, owner, metadata)
    return {
        "success": True,
        "data": {
            "video_id": str(video.id),
            "permlink": video.permlink,
            "upload_id": req.upload_id,
            "status": video.status,
        },
    }


@router.post("/prepare")
def prepare_upload(
    req: PrepareRequest,
    owner: str = Depends(require_username),
    tracker: UploadSessionTracker = Depends(get_upload_tracker),
):
    """legacy flow: create the video entry first, then upload"""
    metadata = req.normalized()
    video, upload = tracker.prepare(owner, req.filename, metadata, req.size, req.duration)
    return {
        "success": True,
        "data": {
            "video_id": str(video.id),
            "permlink": video.permlink,
            "upload_id": upload.upload_id,
            "tus_endpoint": tracker.tus_endpoint,
        },
    }


@router.post("/thumbnail/{video_id}")
def upload_thumbnail(
    video_id: str,
    thumbnail: UploadFile = File(...),
    owner: str = Depends(require_username),
    session: Session = Depends(get_session),
    ipfs: IpfsClient = Depends(get_ipfs_client),
):
    video = _get_owned_video(session, video_id, owner)

    if not (thumbnail.content_type or "").startswith("image/"):
        raise ValidationError("thumbnail must be an image")
    content = thumbnail.file.read(MAX_THUMBNAIL_BYTES + 1)
    if not content:
        raise ValidationError("thumbnail is empty")
    if len(content) > MAX_THUMBNAIL_BYTES:
        raise ValidationError("thumbnail too large (max 5 MB)")

    try:
        cid = ipfs.add(content, thumbnail.filename or "thumbnail")
    except IpfsApiError as e:
        logger.error(f"thumbnail upload failed for video {video_id}: {e}")
        raise UpstreamUnavailableError("Failed to upload thumbnail to IPFS") from e

    video.thumbnail = f"ipfs://{cid}"
    session.add(video)
    session.commit()
    logger.info(f"thumbnail for video {video_id} stored as {cid}")

    return {
        "success": True,
        "data": {"video_id": video_id, "thumbnail_url": video.thumbnail},
    }


@router.get("/video/{video_id}/status")
def video_status(
    video_id: str,
    owner: str = Depends(require_username),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """poll target; done only once the video itself is published"""
    video = _get_owned_video(session, video_id, owner)
    return {"success": True, "data": get_video_status(session, settings, video)}


@router.get("/in-progress")
def in_progress(
    owner: str = Depends(require_username),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    return {"success": True, "data": list_in_progress(session, settings, owner)}


@router.get("/session/{upload_id}")
def upload_session_status(
    upload_id: str,
    owner: str = Depends(require_username),
    tracker: UploadSessionTracker = Depends(get_upload_tracker),
):
    upload = tracker.get(upload_id, owner=owner)
    return {"success": True, "data": upload.to_dict()}


@router.post("/tus-callback", dependencies=[Depends(require_tus_hook)])
def tus_callback(
    payload: dict = Body(...),
    hook_name: Optional[str] = Header(default=None),
    tracker: UploadSessionTracker = Depends(get_upload_tracker),
):
    """
    tusd http hook. v1 sends the hook name as a header and the event as
    the body; v2 wraps it as {"Type": ..., "Event": {...}}.
    """
    hook = hook_name or payload.get("Type")
    event = payload.get("Event") or payload
    upload_info = event.get("Upload") or {}
    meta = upload_info.get("MetaData") or {}
    upload_id = meta.get("upload_id")

    if hook not in ("pre-create", "post-finish", "post-terminate"):
        return {"success": True, "data": {"handled": False}}
    if not upload_id:
        raise ValidationError("upload_id missing from upload metadata")

    if hook == "pre-create":
        # reject transfers that don't belong to a live session
        tracker.get(upload_id)
    elif hook == "post-finish":
        storage = upload_info.get("Storage") or {}
        tracker.mark_transport_complete(
            upload_id,
            tus_upload_id=upload_info.get("ID"),
            storage_path=storage.get("Path"),
            size=upload_info.get("Size"),
        )
    else:
        tracker.mark_abandoned(upload_id)

    return {"success": True, "data": {"handled": True, "hook": hook, "upload_id": upload_id}}
