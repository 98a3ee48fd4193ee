import logging
from typing import Any

from litestar import Request, Response
from litestar.exceptions import HTTPException
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR

from pagecraft.lib.errors import PagecraftError

logger = logging.getLogger(__name__)


def pagecraft_error_handler(request: Request, exc: PagecraftError) -> Response:
    """Translate a domain error into a JSON error response."""
    content: dict[str, Any] = {"status_code": exc.status_code, "detail": exc.message}
    if exc.context:
        content["context"] = exc.context
    return Response(content=content, status_code=exc.status_code, media_type="application/json")


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    status_code = exc.status_code
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    content: dict[str, Any] = {"status_code": status_code, "detail": detail}
    if getattr(exc, "extra", None):
        content["extra"] = exc.extra
    return Response(content=content, status_code=status_code, media_type="application/json")


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Log unexpected exceptions and hide their details from the client."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    return Response(
        content={"status_code": status_code, "detail": "Internal Server Error"},
        status_code=status_code,
        media_type="application/json",
    )


EXCEPTION_HANDLERS: dict[type[Exception], Any] = {
    PagecraftError: pagecraft_error_handler,
    HTTPException: http_exception_handler,
    Exception: internal_server_error_handler,
}
