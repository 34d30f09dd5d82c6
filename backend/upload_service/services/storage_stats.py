import logging
import math
from datetime import datetime
from typing import Tuple

import psutil

from upload_service.core.config import Settings
from upload_service.core.errors import SystemQueryError, UpstreamUnavailableError
from upload_service.services.ipfs import IpfsApiError, IpfsClient

logger = logging.getLogger(__name__)

# (upper bound inclusive, level, color); anything above the last bound is critical
HEALTH_TIERS = [
    (60, "healthy", "green"),
    (80, "warning", "yellow"),
]
CRITICAL = ("critical", "red")


def classify_health(percent_used: float) -> Tuple[str, str]:
    """
    map disk usage to the dashboard's three tiers:
    <=60 healthy/green, 61-80 warning/yellow, >80 critical/red
    """
    for bound, level, color in HEALTH_TIERS:
        if percent_used <= bound:
            return level, color
    return CRITICAL


class StorageStatsCollector:
    """disk and ipfs repo usage for the storage dashboard"""

    def __init__(self, settings: Settings, ipfs: IpfsClient):
        self.repo_path = settings.IPFS_REPO_PATH
        self.ipfs = ipfs

    def get_disk_usage(self) -> dict:
        """capacity of the partition hosting the ipfs repo"""
        try:
            usage = psutil.disk_usage(self.repo_path)
        except OSError as e:
            logger.error(f"error reading disk usage for {self.repo_path}: {e}")
            raise SystemQueryError("Failed to get disk usage statistics") from e

        return {
            "total": usage.total,
            "used": usage.used,
            "available": usage.free,
            # whole percent rounded up, as df reports Use%
            "percentUsed": int(math.ceil(usage.percent)),
        }

    def get_repo_stats(self) -> dict:
        try:
            return self.ipfs.repo_stat()
        except IpfsApiError as e:
            logger.error(f"error getting ipfs repo stats: {e}")
            raise UpstreamUnavailableError("Failed to get IPFS repository statistics") from e

    def get_storage_stats(self) -> dict:
        repo_stats = self.get_repo_stats()
        disk_stats = self.get_disk_usage()

        percent_of_disk = 0.0
        if disk_stats["total"] > 0:
            percent_of_disk = repo_stats["repoSize"] / disk_stats["total"] * 100

        level, color = classify_health(disk_stats["percentUsed"])

        return {
            "disk": disk_stats,
            "ipfs": {
                "repoSize": repo_stats["repoSize"],
                "storageMax": repo_stats["storageMax"],
                "numObjects": repo_stats["numObjects"],
                "repoPath": repo_stats.get("repoPath"),
                "version": repo_stats.get("version"),
                "percentOfDisk": round(percent_of_disk, 2),
            },
            "status": {
                "level": level,
                "color": color,
            },
            "timestamp": datetime.utcnow().isoformat(),
        }
