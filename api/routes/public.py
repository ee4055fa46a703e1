"""
Public booking endpoints (no authentication).

Customers browse a business by slug, list free slots and book. Existing
bookings are managed only through the tokens embedded in customer links:
- /bookings/{action_token}: view, cancel, reschedule, calendar download
- /modifications/{modification_token}: review and accept a proposed change

Rate limited per IP by RateLimitMiddleware.
"""

import logging
from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, Response, status
from fastapi.responses import JSONResponse

from api.dependencies import manage_url, transition_response
from api.models.scheduling import (
    BusinessResponse,
    CancelRequest,
    ConflictResponse,
    CreateBookingRequest,
    CreatedBookingResponse,
    CustomerBookingResponse,
    PublicBusinessResponse,
    RescheduleRequest,
    ServiceResponse,
    SlotResponse,
    SlotsResponse,
    StaffMemberResponse,
    TransitionResponse,
)
from scheduling.services import calendar_service, self_service, token_service
from scheduling.services.booking_query_service import (
    get_business_by_slug,
    list_bookable_services,
    list_bookable_staff,
)
from scheduling.services.slot_service import list_slots
from scheduling.transactions import BookingAllocator, CustomerDetails

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/public", tags=["public"])


@router.get("/businesses/{slug}", response_model=PublicBusinessResponse)
async def get_public_business(slug: str) -> PublicBusinessResponse:
    """Business landing data: profile, active services and staff."""
    business = await get_business_by_slug(slug)
    services = await list_bookable_services(business.id)
    staff = await list_bookable_staff(business.id)
    return PublicBusinessResponse(
        business=BusinessResponse.model_validate(business),
        services=[ServiceResponse.model_validate(s) for s in services],
        staff_members=[StaffMemberResponse.model_validate(s) for s in staff],
    )


@router.get("/businesses/{slug}/slots", response_model=SlotsResponse)
async def get_public_slots(
    slug: str,
    service_id: Annotated[UUID, Query(description="Service to book")],
    start_date: Annotated[date, Query(description="First day (inclusive)")],
    end_date: Annotated[date, Query(description="Last day (inclusive)")],
    staff_member_id: Annotated[UUID | None, Query(description="Staff scope")] = None,
) -> SlotsResponse:
    """Free slots only; full slots are hidden from customers."""
    business = await get_business_by_slug(slug)
    slots = await list_slots(
        business.id,
        service_id,
        start_date,
        end_date,
        staff_member_id=staff_member_id,
        only_available=True,
    )
    return SlotsResponse(
        service_id=service_id,
        staff_member_id=staff_member_id,
        start_date=start_date,
        end_date=end_date,
        slots=[SlotResponse(**slot.to_dict()) for slot in slots],
    )


@router.post(
    "/businesses/{slug}/bookings",
    status_code=status.HTTP_201_CREATED,
    response_model=CreatedBookingResponse,
    responses={409: {"model": ConflictResponse}},
)
async def create_public_booking(slug: str, request: CreateBookingRequest):
    """
    Book a slot.

    Returns 409 with the conflict reason (outside_availability / blocked /
    slot_full) when the slot cannot be allocated.
    """
    business = await get_business_by_slug(slug)
    result = await BookingAllocator.allocate(
        business_id=business.id,
        service_id=request.service_id,
        customer=CustomerDetails(
            name=request.customer_name,
            email=request.customer_email,
            phone=request.customer_phone,
            notes=request.customer_notes,
        ),
        booking_date=request.booking_date,
        start_time=request.start_time,
        end_time=request.end_time,
        staff_member_id=request.staff_member_id,
    )

    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=ConflictResponse(
                error="slot_unavailable",
                reason=result.reason.value,
                message=result.message,
            ).model_dump(),
        )

    token = result.booking.customer_action_token
    return CreatedBookingResponse(
        booking=CustomerBookingResponse.model_validate(result.booking),
        customer_action_token=token,
        manage_url=manage_url(token),
    )


@router.get("/bookings/{action_token}", response_model=CustomerBookingResponse)
async def get_booking_by_action_token(action_token: str) -> CustomerBookingResponse:
    booking = await token_service.resolve_action_token(action_token)
    return CustomerBookingResponse.model_validate(booking)


@router.get(
    "/bookings/{action_token}/calendar.ics",
    response_class=Response,
    responses={200: {"content": {"text/calendar": {}}}},
)
async def get_booking_calendar(action_token: str) -> Response:
    """Download the booking as an iCalendar event (Apple, Google and Outlook calendars)."""
    calendar = await calendar_service.booking_calendar(action_token)
    return Response(
        content=calendar.content,
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="{calendar.filename}"'},
    )


@router.post("/bookings/{action_token}/cancel", response_model=TransitionResponse)
async def cancel_booking(action_token: str, request: CancelRequest | None = None):
    """Cancel a booking. Cancelling twice is a no-op (error_code already_cancelled, 200)."""
    result = await self_service.cancel_with_action_token(
        action_token, reason=request.reason if request else None
    )
    return transition_response(result)


@router.post("/bookings/{action_token}/reschedule", response_model=TransitionResponse)
async def reschedule_booking(action_token: str, request: RescheduleRequest):
    """Move a booking to another free slot; 409 with the conflict reason otherwise."""
    result = await self_service.reschedule_with_action_token(
        action_token,
        booking_date=request.booking_date,
        start_time=request.start_time,
        end_time=request.end_time,
    )
    return transition_response(result)


@router.get("/modifications/{modification_token}", response_model=CustomerBookingResponse)
async def get_modification(modification_token: str) -> CustomerBookingResponse:
    """Booking with the proposal the token refers to."""
    booking = await token_service.resolve_modification_token(modification_token)
    return CustomerBookingResponse.model_validate(booking)


@router.post("/modifications/{modification_token}/confirm", response_model=TransitionResponse)
async def confirm_modification(modification_token: str):
    """
    Accept a proposed modification.

    The token is single-use. If the proposed slot was taken in the meantime
    the response is 409 with the conflict reason and the token is spent.
    """
    result = await self_service.confirm_modification(modification_token)
    return transition_response(result)
