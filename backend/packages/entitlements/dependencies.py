from typing import Annotated, Optional

from fastapi import Header, HTTPException, status

from common.core.otel_axiom_exporter import get_logger, trace_span

logger = get_logger(__name__)


@trace_span
async def get_current_user_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Internal user ID of the caller.

    Authentication happens upstream (API gateway); it forwards the verified
    user ID in ``X-User-Id``.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    return x_user_id.strip()
