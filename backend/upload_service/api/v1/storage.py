import logging
from typing import List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from upload_service.api.deps import get_pin_manager, get_stats_collector
from upload_service.core.auth import require_storage_admin
from upload_service.core.errors import UploadServiceError
from upload_service.services.pin_manager import PinManager, format_bytes
from upload_service.services.storage_stats import StorageStatsCollector

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_storage_admin)])


class UnpinRequest(BaseModel):
    cids: List[str] = []
    force: bool = False


@router.get("/stats")
def get_storage_stats(stats: StorageStatsCollector = Depends(get_stats_collector)):
    """disk usage, ipfs repo usage and health tier"""
    return {"success": True, "data": stats.get_storage_stats()}


@router.get("/pinned")
def list_pinned(pins: PinManager = Depends(get_pin_manager)):
    pinned = pins.list_pinned_files()
    return {"success": True, "count": len(pinned), "data": pinned}


@router.get("/unpinned")
def list_unpinned(pins: PinManager = Depends(get_pin_manager)):
    """approximate only: ipfs can't enumerate unpinned-but-uncollected objects"""
    unpinned = pins.list_unpinned_files()
    return {
        "success": True,
        "count": len(unpinned),
        "data": unpinned,
        "reclaimable": pins.estimate_reclaimable_space(),
    }


@router.post("/unpin")
def unpin(req: UnpinRequest, pins: PinManager = Depends(get_pin_manager)):
    """
    bulk unpin. per-cid failures come back in the result with a 200;
    pins younger than the safety window are skipped unless force is set.
    """
    logger.info(f"unpinning {len(req.cids)} files (force={req.force})...")
    results = pins.unpin_files(req.cids, force=req.force)
    return {
        "success": True,
        "data": results,
        "message": (
            f"Unpinned {len(results['success'])} files, {len(results['failed'])} failed, "
            f"{len(results['skipped'])} skipped"
        ),
    }


@router.post("/gc")
def run_gc(pins: PinManager = Depends(get_pin_manager)):
    logger.info("garbage collection requested by admin")
    result = pins.run_garbage_collection()
    return {
        "success": True,
        "data": result,
        "message": f"Garbage collection completed. Freed {format_bytes(result['spaceFreed'])}",
    }


@router.get("/health")
def storage_health(stats: StorageStatsCollector = Depends(get_stats_collector)):
    try:
        storage = stats.get_storage_stats()
    except UploadServiceError as e:
        return JSONResponse(
            status_code=500,
            content={"success": False, "healthy": False, "error": e.message},
        )
    return {
        "success": True,
        "healthy": storage["status"]["level"] != "critical",
        "status": storage["status"],
    }
