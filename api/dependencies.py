"""
Shared FastAPI dependencies.

Authentication of business users is out of scope: the business endpoints
trust an upstream gateway to have authorized the caller and forward the
business id in the X-Business-Id header.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.responses import JSONResponse

from api.models.scheduling import TransitionResponse
from scheduling.errors import TransitionErrorCode
from scheduling.fsm.models import TransitionResult
from shared.config import get_settings


async def get_business_id(
    x_business_id: Annotated[str, Header(description="Authorized business UUID")],
) -> UUID:
    """Parse the authorized business id forwarded by the gateway."""
    try:
        return UUID(x_business_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Business-Id must be a UUID",
        )


BusinessId = Annotated[UUID, Depends(get_business_id)]


def manage_url(action_token: str) -> str:
    """Customer self-service link for a booking."""
    return f"{get_settings().PUBLIC_BASE_URL.rstrip('/')}/booking/{action_token}"


def modification_url(modification_token: str) -> str:
    """Customer link to review a proposed modification."""
    return f"{get_settings().PUBLIC_BASE_URL.rstrip('/')}/modification/{modification_token}"


def transition_response(result: TransitionResult) -> JSONResponse:
    """
    Serialize a TransitionResult.

    - success and repeated cancels (already_cancelled) -> 200
    - invalid_transition and slot conflicts -> 409

    The raw modification token is only exposed as a customer link.
    """
    body = TransitionResponse(**result.to_dict())
    if result.modification_token:
        body.modification_url = modification_url(result.modification_token)

    status_code = status.HTTP_200_OK
    if not result.success and result.error_code != TransitionErrorCode.ALREADY_CANCELLED:
        status_code = status.HTTP_409_CONFLICT

    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
