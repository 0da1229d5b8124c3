#main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.ious.errors import (
    DuplicateIOUError,
    InvalidTransition,
    NotFoundError,
    StorageError,
    ValidationError,
)
from middleware import RequestContextMiddleware
from routes.health import router as health_router
from routes.offline import router as offline_router
from services.observability import install_request_id_filter
from settings import validate_env_settings

logger = logging.getLogger("relief.api")

REQUEST_LOGGERS = ("relief.api", "relief.http", "relief.ious", "relief.ious.http", "relief.reconcile", "relief.settlement")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def create_app() -> FastAPI:
    validate_env_settings()
    install_request_id_filter(*REQUEST_LOGGERS)

    app = FastAPI(title="ReliefFund Offline API", version="1.0.0")

    # -----------------------------
    # MIDDLEWARE
    # -----------------------------

    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------

    app.include_router(health_router)
    app.include_router(offline_router)

    # -----------------------------
    # ERRORS
    # -----------------------------

    @app.exception_handler(DuplicateIOUError)
    async def duplicate_iou_handler(request: Request, exc: DuplicateIOUError):
        return _error(409, str(exc))

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = (exc.errors() or [{}])[0]
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = first.get("msg", "Invalid request")
        return _error(400, f"Invalid request: {loc}: {msg}" if loc else f"Invalid request: {msg}")

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, "IOU not found")

    @app.exception_handler(InvalidTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidTransition):
        return _error(409, str(exc))

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("storage failure path=%s err=%s", request.url.path, exc)
        return _error(500, "Storage unavailable")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == 404 and message == "Not Found":
            message = "Endpoint not found"
        return _error(exc.status_code, message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error path=%s", request.url.path)
        return _error(500, "Internal server error")

    return app


app = create_app()
