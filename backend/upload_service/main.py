import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from upload_service.api.v1 import health, pipeline, storage, upload
from upload_service.core.config import get_settings
from upload_service.core.db import init_db
from upload_service.core.errors import AuthError, UploadServiceError
from upload_service.core.logging_config import setup_logging

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title=settings.PROJECT_NAME)


@app.on_event("startup")
def on_startup():
    setup_logging(settings)
    init_db()


@app.exception_handler(UploadServiceError)
async def handle_service_error(request: Request, exc: UploadServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    headers = None
    if isinstance(exc, AuthError) and exc.challenge:
        headers = {"WWW-Authenticate": exc.challenge}
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "retryable": exc.retryable},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid request")
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": f"Invalid request: {field} {message}".replace("  ", " ").strip(),
            "retryable": False,
        },
    )


@app.get("/")
def read_root():
    return {"message": "Welcome to the video upload API"}

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(upload.router, prefix="/api/upload", tags=["upload"])
app.include_router(storage.router, prefix="/api/storage", tags=["storage"])
app.include_router(pipeline.router, prefix="/api/pipeline", tags=["pipeline"])
