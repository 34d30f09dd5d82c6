import logging
import re
import secrets
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from upload_service.core.config import Settings, get_settings
from upload_service.core.errors import AuthError, ConfigurationError

logger = logging.getLogger(__name__)

STORAGE_REALM = 'Basic realm="IPFS Storage Management"'
# hive account names: 3-16 chars, lowercase letters, digits, dots and dashes
USERNAME_PATTERN = re.compile(r"^[a-z][a-z0-9.-]{2,15}$")

basic_auth = HTTPBasic(auto_error=False)


def require_username(x_hive_username: Optional[str] = Header(default=None)) -> str:
    """account handle for upload routes, sent as X-Hive-Username"""
    if not x_hive_username:
        raise AuthError("Authentication required")
    username = x_hive_username.strip().lower()
    if not USERNAME_PATTERN.match(username):
        raise AuthError("Invalid username")
    return username


def require_storage_admin(
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_auth),
    settings: Settings = Depends(get_settings),
) -> str:
    """basic auth for the storage dashboard; an unset password is a server error, not a bypass"""
    if not settings.STORAGE_ADMIN_PASSWORD:
        logger.error("STORAGE_ADMIN_PASSWORD not configured")
        raise ConfigurationError("Storage authentication not configured")

    if credentials is None:
        raise AuthError("Authentication required", challenge=STORAGE_REALM)

    valid_user = secrets.compare_digest(
        credentials.username.encode(), settings.STORAGE_ADMIN_USERNAME.encode()
    )
    valid_password = secrets.compare_digest(
        credentials.password.encode(), settings.STORAGE_ADMIN_PASSWORD.encode()
    )
    if not (valid_user and valid_password):
        logger.warning(f"rejected storage admin login for {credentials.username!r}")
        raise AuthError("Invalid credentials", challenge=STORAGE_REALM)
    return credentials.username


def _check_shared_secret(expected: Optional[str], provided: Optional[str], what: str):
    if not expected:
        return
    if not provided or not secrets.compare_digest(provided.encode(), expected.encode()):
        raise AuthError(f"Invalid {what}")


def require_pipeline_token(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
):
    """encoder and publisher callbacks carry `Authorization: Bearer <token>`"""
    if not settings.PIPELINE_CALLBACK_TOKEN:
        logger.error("PIPELINE_CALLBACK_TOKEN not configured")
        raise ConfigurationError("Pipeline callback authentication not configured")
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if not token:
        raise AuthError("Authentication required")
    _check_shared_secret(settings.PIPELINE_CALLBACK_TOKEN, token, "pipeline token")


def require_tus_hook(
    x_hook_secret: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
):
    """transport hooks may be protected by a shared secret header"""
    _check_shared_secret(settings.TUS_HOOK_SECRET, x_hook_secret, "hook secret")
