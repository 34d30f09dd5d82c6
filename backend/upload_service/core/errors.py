import logging
from typing import Callable, Any, Optional
from functools import wraps
import time

logger = logging.getLogger(__name__)

def retry_with_backoff(max_retries: int = 3, initial_delay: float = 1.0, backoff_factor: float = 2.0):
    """
    decorator to retry a function with exponential backoff
    
    usage:
        @retry_with_backoff(max_retries=5, initial_delay=2.0)
        def add_to_ipfs(file_path):
            # ... code that might fail ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            delay = initial_delay
            last_exception = None
            
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        logger.warning(
                            f"{func.__name__} failed (attempt {attempt + 1}/{max_retries}): {str(e)}. "
                            f"retrying in {delay}s..."
                        )
                        time.sleep(delay)
                        delay *= backoff_factor
                    else:
                        logger.error(
                            f"{func.__name__} failed after {max_retries} attempts: {str(e)}"
                        )
            
            # all retries exhausted
            raise last_exception
        
        return wrapper
    return decorator


class UploadServiceError(Exception):
    """base exception for upload-service errors"""
    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.__class__.__name__


class ValidationError(UploadServiceError):
    """bad input from the caller"""
    status_code = 400


class AuthError(UploadServiceError):
    """missing or invalid credentials"""
    status_code = 401

    def __init__(self, message: str = "", challenge: Optional[str] = None):
        super().__init__(message)
        # value for the WWW-Authenticate header, if any
        self.challenge = challenge


class NotFoundError(UploadServiceError):
    """requested record does not exist"""
    status_code = 404


class NotReadyError(UploadServiceError):
    """raised when finalize arrives before the transport reported completion"""
    status_code = 409
    retryable = True


class AlreadyFinalizedError(UploadServiceError):
    """raised on a second finalize for the same upload"""
    status_code = 409


class FinalizeConflictError(UploadServiceError):
    """raised when finalize lost a write conflict and left the upload unfinalized"""
    status_code = 409
    retryable = True


class ConfigurationError(UploadServiceError):
    """service is missing required configuration"""
    status_code = 500


class UpstreamUnavailableError(UploadServiceError):
    """raised when ipfs or another dependency can't be reached"""
    status_code = 502
    retryable = True


class SystemQueryError(UpstreamUnavailableError):
    """raised when host filesystem usage can't be read"""


class GCFailedError(UploadServiceError):
    """raised when ipfs garbage collection fails"""
    status_code = 500
    retryable = True
