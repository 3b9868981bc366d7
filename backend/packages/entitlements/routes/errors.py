"""
HTTP mapping for application errors.

Services raise the entitlement taxonomy; status codes are assigned here and
nowhere else.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.core.exceptions import AppException, NotFoundError, ValidationError
from common.core.otel_axiom_exporter import get_logger
from packages.entitlements.exceptions import (
    InvalidSignature,
    MalformedEvent,
    ProviderRequestError,
    ProviderUnavailable,
    QuotaExceeded,
)

logger = get_logger(__name__)

STATUS_BY_ERROR: list[tuple[type[AppException], int]] = [
    (QuotaExceeded, status.HTTP_429_TOO_MANY_REQUESTS),
    (InvalidSignature, status.HTTP_400_BAD_REQUEST),
    (MalformedEvent, status.HTTP_400_BAD_REQUEST),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ProviderUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ProviderRequestError, status.HTTP_502_BAD_GATEWAY),
]


def status_for(exc: AppException) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    status_code = status_for(exc)
    body = {"detail": exc.message or "Internal server error"}

    if isinstance(exc, QuotaExceeded):
        body.update(
            feature=exc.feature,
            current=exc.current,
            limit=exc.limit,
            remaining=exc.remaining,
            recommended_plan=exc.recommended_plan,
        )
    elif status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        body["detail"] = "Billing provider is temporarily unavailable. Please retry."
    elif status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(
            f"Unhandled application error on {request.url.path}: {exc.message}",
            extra={"path": request.url.path, **exc.context},
        )
        body["detail"] = "Internal server error"

    return JSONResponse(status_code=status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, app_exception_handler)
