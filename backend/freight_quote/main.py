import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from .api import api_booking, api_history, api_rates
from .core.config import settings
from .core.observability import setup_logging, setup_tracer
from .database import Base, engine
from .utils.errors import FreightQuoteError, ValidationError, field_errors_from_pydantic
from .utils.redis_cache import close_redis_client

setup_logging()
logger = logging.getLogger(__name__)

# Always use ORJSONResponse for JSON payloads to ensure consistent, fast
# serialization across all endpoints.
app = FastAPI(title="Freight Quote API", default_response_class=ORJSONResponse)
setup_tracer(app)


def _envelope(status_code: int, error_code: str, message: str, errors=None) -> ORJSONResponse:
    content = {"requestId": str(uuid.uuid4()), "errorCode": error_code, "message": message}
    if errors:
        content["errors"] = errors
    return ORJSONResponse(status_code=status_code, content=content)


@app.exception_handler(FreightQuoteError)
async def freight_quote_exception_handler(request: Request, exc: FreightQuoteError):
    if exc.error_code == "INTERNAL_ERROR":
        logger.error("Unhandled domain error at %s: %s", request.url.path, exc, exc_info=exc)
        return _envelope(exc.http_status, "INTERNAL_ERROR", "Internal Server Error")
    logger.warning("%s at %s: %s", exc.error_code, request.url.path, exc.message)
    errors = exc.field_errors if isinstance(exc, ValidationError) else None
    return _envelope(exc.http_status, exc.error_code, exc.message, errors)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return validation errors in the standard envelope and log them for debugging."""
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    return _envelope(
        status.HTTP_400_BAD_REQUEST,
        ValidationError.error_code,
        "Invalid request",
        field_errors_from_pydantic(errors),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error: %s", exc)
    return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", "Internal Server Error")


@app.on_event("startup")
def create_tables() -> None:
    # Alembic owns production schema; this keeps sqlite/dev usable out of the box
    if engine.url.get_backend_name() == "sqlite":
        Base.metadata.create_all(bind=engine)


@app.on_event("shutdown")
def shutdown_redis_client() -> None:
    """Close the Redis connection pool on application shutdown."""
    close_redis_client()


@app.get("/healthz", tags=["health"])
async def healthz():
    return {"status": "ok"}


api_prefix = settings.API_V1_STR

app.include_router(api_rates.router, prefix=api_prefix)
app.include_router(api_booking.router, prefix=api_prefix)
app.include_router(api_history.router, prefix=api_prefix)
