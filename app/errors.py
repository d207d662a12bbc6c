"""Exception handlers mapping service errors to JSON responses."""
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from domain.errors import (
    EmptyInput,
    LLMUnavailable,
    MalformedResponse,
    NoActiveDraft,
    NormalizationInProgress,
    NoValidItems,
    OrderEntryError,
    StaleResponse,
    UnknownCustomer,
    UpstreamError,
    ValidationFailed,
)
from infrastructure.logging import get_logger

logger = get_logger("order-entry")

# Most specific classes first: UnknownCustomer is also a ValidationFailed.
_STATUS_BY_ERROR = (
    (UnknownCustomer, status.HTTP_404_NOT_FOUND),
    (ValidationFailed, status.HTTP_400_BAD_REQUEST),
    (EmptyInput, status.HTTP_400_BAD_REQUEST),
    (NoValidItems, status.HTTP_400_BAD_REQUEST),
    (NoActiveDraft, status.HTTP_409_CONFLICT),
    (NormalizationInProgress, status.HTTP_409_CONFLICT),
    (StaleResponse, status.HTTP_409_CONFLICT),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
    (MalformedResponse, status.HTTP_502_BAD_GATEWAY),
    (LLMUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_for(exc: OrderEntryError) -> int:
    for error_cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return code
    return status.HTTP_400_BAD_REQUEST


async def order_entry_error_handler(request: Request, exc: OrderEntryError) -> JSONResponse:
    """Recoverable domain failures: report them and leave state as it was."""
    code = status_for(exc)
    logger.warning(
        f"{type(exc).__name__}: {exc}",
        path=request.url.path,
        status_code=code,
    )

    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic exceptions with 500 status without exposing internals."""
    logger.error(
        f"Internal server error: {type(exc).__name__}",
        path=request.url.path,
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error_type": "InternalServerError"
        }
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle FastAPI request validation errors with detailed messages."""
    logger.warning(
        "Request validation failed",
        path=request.url.path,
        errors=exc.errors()
    )

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_errors(exc), "error_type": "RequestValidationError"}
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic may put exception objects into ctx, which JSONResponse cannot encode
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]
