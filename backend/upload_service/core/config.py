import os
from functools import lru_cache
from typing import Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


class Settings:
    """process configuration, built once and passed to each component"""

    PROJECT_NAME: str = "Video Upload Service"

    def __init__(self, **overrides):
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://postgres:postgres@db:5432/uploads")
        self.REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

        # ipfs (kubo rpc api)
        self.IPFS_API_URL: str = os.getenv("IPFS_API_URL", "http://localhost:5001")
        self.IPFS_REPO_PATH: str = os.getenv("IPFS_REPO_PATH", "/")
        self.IPFS_STAT_TIMEOUT: int = _env_int("IPFS_STAT_TIMEOUT", 10)
        self.IPFS_LIST_TIMEOUT: int = _env_int("IPFS_LIST_TIMEOUT", 30)
        self.IPFS_OBJECT_TIMEOUT: int = _env_int("IPFS_OBJECT_TIMEOUT", 5)
        self.IPFS_GC_TIMEOUT: int = _env_int("IPFS_GC_TIMEOUT", 300)
        self.IPFS_ADD_TIMEOUT: int = _env_int("IPFS_ADD_TIMEOUT", 600)

        # storage admin basic auth
        self.STORAGE_ADMIN_USERNAME: str = os.getenv("STORAGE_ADMIN_USERNAME", "admin")
        self.STORAGE_ADMIN_PASSWORD: Optional[str] = os.getenv("STORAGE_ADMIN_PASSWORD") or None
        self.PIN_MIN_AGE_HOURS: int = _env_int("PIN_MIN_AGE_HOURS", 24)

        # uploads
        self.UPLOAD_SESSION_TTL_HOURS: int = _env_int("UPLOAD_SESSION_TTL_HOURS", 6)
        self.TUS_ENDPOINT: str = os.getenv("TUS_ENDPOINT", "/files")
        self.TUS_HOOK_SECRET: Optional[str] = os.getenv("TUS_HOOK_SECRET") or None
        self.PIPELINE_CALLBACK_TOKEN: Optional[str] = os.getenv("PIPELINE_CALLBACK_TOKEN") or None

        # polling contract
        self.IN_PROGRESS_LIMIT: int = _env_int("IN_PROGRESS_LIMIT", 10)
        self.POLL_INTERVAL_MS: int = _env_int("POLL_INTERVAL_MS", 5000)
        self.REAPER_INTERVAL_SECONDS: int = _env_int("REAPER_INTERVAL_SECONDS", 300)

        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
        self.LOG_DIR: Optional[str] = os.getenv("LOG_DIR") or None

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"unknown setting: {key}")
            setattr(self, key, value)


@lru_cache()
def get_settings() -> Settings:
    """cached settings for the running process"""
    return Settings()
