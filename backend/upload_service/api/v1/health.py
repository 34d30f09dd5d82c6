from datetime import datetime

from fastapi import APIRouter, Depends
from sqlmodel import Session, select

from upload_service.api.deps import get_ipfs_client
from upload_service.core.config import Settings, get_settings
from upload_service.core.db import get_session
from upload_service.models import VideoRecord
from upload_service.services.ipfs import IpfsApiError, IpfsClient

router = APIRouter()


@router.get("/")
def health_check():
    """basic liveness check"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "service": "upload-service"
    }


@router.get("/ready")
def readiness_check(
    session: Session = Depends(get_session),
    ipfs: IpfsClient = Depends(get_ipfs_client),
    settings: Settings = Depends(get_settings),
):
    """comprehensive readiness check - verifies all dependencies"""
    checks = {}
    all_healthy = True

    # check database
    try:
        session.exec(select(VideoRecord).limit(1))
        checks["database"] = {"status": "healthy", "message": "connected"}
    except Exception as e:
        checks["database"] = {"status": "unhealthy", "message": str(e)}
        all_healthy = False

    # check ipfs
    try:
        version = ipfs.version()
        checks["ipfs"] = {"status": "healthy", "message": f"kubo {version.get('Version', 'unknown')}"}
    except IpfsApiError as e:
        checks["ipfs"] = {"status": "unhealthy", "message": str(e)}
        all_healthy = False

    # check redis; without it uploads finalize but never reach the encoder
    if settings.REDIS_URL:
        try:
            import redis
            redis.from_url(settings.REDIS_URL, socket_connect_timeout=2).ping()
            checks["redis"] = {"status": "healthy", "message": "connected"}
        except Exception as e:
            checks["redis"] = {"status": "unhealthy", "message": str(e)}
            all_healthy = False
    else:
        checks["redis"] = {"status": "warning", "message": "not configured"}

    return {
        "status": "healthy" if all_healthy else "unhealthy",
        "timestamp": datetime.utcnow().isoformat(),
        "checks": checks
    }
