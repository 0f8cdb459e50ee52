"""Request identity for the Recurrence Service.

Authentication happens upstream; the gateway and Dapr service invocation pass
the authenticated user in the X-User-Id header.
"""
import uuid
from typing import Optional

from fastapi import HTTPException, Request, status
from pydantic import BaseModel


class CurrentUser(BaseModel):
    """User the request acts on behalf of."""
    user_id: str


async def get_current_user(request: Request) -> CurrentUser:
    """
    Extract the calling user from the X-User-Id header.

    Raises:
        HTTPException: If the header is missing or empty
    """
    user_id = request.headers.get("x-user-id", "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return CurrentUser(user_id=user_id)


async def get_correlation_id(request: Request) -> str:
    """Correlation id from X-Correlation-Id, or a new one."""
    correlation_id: Optional[str] = request.headers.get("x-correlation-id")
    return correlation_id or str(uuid.uuid4())
