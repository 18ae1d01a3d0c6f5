from contextlib import asynccontextmanager
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from starlette.exceptions import HTTPException as StarletteHTTPException

from crm_api.api.routes import router as api_router
from crm_api.core.config import get_settings
from crm_api.core.context import RequestContextMiddleware
from crm_api.core.database import drop_legacy_indexes, engine
from crm_api.core.errors import CRMError, DependencyError
from crm_api.crm.api import error_response
from crm_api.logging import configure_logging
from crm_api.middleware.correlation_id import CorrelationIdMiddleware
from crm_api.middleware.request_logging import RequestLoggingMiddleware
from crm_api.otel import SERVICE_NAME, get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("crm_api.lifecycle")

_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.drop_legacy_indexes:
        drop_legacy_indexes(engine)
    logger.info("system.started", extra={"status": settings.app_env})
    yield


def _field_name(loc: tuple[Any, ...]) -> str:
    parts = [str(item) for item in loc]
    if parts and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts) or "body"


async def handle_crm_error(request: Request, exc: CRMError):  # type: ignore[no-untyped-def]
    message = exc.message
    if isinstance(exc, DependencyError):
        logger.error("http.dependency_failed", extra={"path": request.url.path, "error": exc.message})
        if not get_settings().expose_error_details:
            message = exc.public_message
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=message,
        details=exc.details,
    )


async def handle_request_validation(request: Request, exc: RequestValidationError):  # type: ignore[no-untyped-def]
    details = [{"field": _field_name(tuple(item.get("loc", ()))), "message": item.get("msg", "invalid")} for item in exc.errors()]
    return error_response(
        request,
        status_code=400,
        code="validation_error",
        message="validation failed",
        details=details,
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException):  # type: ignore[no-untyped-def]
    code = "not_found" if exc.status_code == 404 else "http_error"
    return error_response(request, status_code=exc.status_code, code=code, message=str(exc.detail))


async def handle_unexpected(request: Request, exc: Exception):  # type: ignore[no-untyped-def]
    logger.exception("http.unhandled_error", extra={"path": request.url.path, "error": str(exc)[:500]})
    message = str(exc) if get_settings().expose_error_details else "Internal server error"
    return error_response(request, status_code=500, code="internal_error", message=message)


app = FastAPI(title="CRM API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_exception_handler(CRMError, handle_crm_error)
app.add_exception_handler(RequestValidationError, handle_request_validation)
app.add_exception_handler(StarletteHTTPException, handle_http_exception)
app.add_exception_handler(Exception, handle_unexpected)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel(SERVICE_NAME, True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
