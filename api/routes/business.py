"""
Business API endpoints.

Calendar, booking lifecycle and schedule configuration for an already
authorized business (X-Business-Id header, see api.dependencies).

Provides REST endpoints for:
- Slot listing (including full slots) and direct allocation
- Booking list/detail and lifecycle transitions
- Modification proposals
- Services, staff members and the services each staff member offers
- Weekly availability rules and blocked times
"""

import logging
from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from api.dependencies import BusinessId, manage_url, transition_response
from api.models.scheduling import (
    AdminServiceResponse,
    AdminStaffMemberResponse,
    AvailabilityRuleRequest,
    AvailabilityRuleResponse,
    BlockedTimeRequest,
    BlockedTimeResponse,
    BookingResponse,
    CancelRequest,
    ConflictResponse,
    CreateBookingRequest,
    CreatedBookingResponse,
    CreateServiceRequest,
    CreateStaffMemberRequest,
    CustomerBookingResponse,
    ProposeModificationRequest,
    SlotResponse,
    SlotsResponse,
    StaffServicesRequest,
    StaffServicesResponse,
    TransitionRequest,
    TransitionResponse,
    UpdateServiceRequest,
    UpdateStaffMemberRequest,
)
from database.models import BookingStatus
from scheduling.fsm.models import BookingEvent, TransitionPayload
from scheduling.services import booking_query_service, catalog_service, schedule_config_service
from scheduling.services.schedule_config_service import RuleInput
from scheduling.services.slot_service import list_slots
from scheduling.services.transition_service import transition
from scheduling.transactions import BookingAllocator, CustomerDetails

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/business", tags=["business"])


# =============================================================================
# Slots & allocation
# =============================================================================


@router.get("/slots", response_model=SlotsResponse)
async def get_slots(
    business_id: BusinessId,
    service_id: Annotated[UUID, Query(description="Service to book")],
    start_date: Annotated[date, Query(description="First day (inclusive)")],
    end_date: Annotated[date, Query(description="Last day (inclusive)")],
    staff_member_id: Annotated[UUID | None, Query(description="Staff scope")] = None,
    only_available: Annotated[bool, Query(description="Hide full slots")] = False,
) -> SlotsResponse:
    slots = await list_slots(
        business_id,
        service_id,
        start_date,
        end_date,
        staff_member_id=staff_member_id,
        only_available=only_available,
    )
    return SlotsResponse(
        service_id=service_id,
        staff_member_id=staff_member_id,
        start_date=start_date,
        end_date=end_date,
        slots=[SlotResponse(**slot.to_dict()) for slot in slots],
    )


@router.post(
    "/bookings",
    status_code=status.HTTP_201_CREATED,
    response_model=CreatedBookingResponse,
    responses={409: {"model": ConflictResponse}},
)
async def create_booking(business_id: BusinessId, request: CreateBookingRequest):
    """Book on behalf of a customer (phone or walk-in)."""
    result = await BookingAllocator.allocate(
        business_id=business_id,
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


# =============================================================================
# Bookings
# =============================================================================


@router.get("/bookings", response_model=list[BookingResponse])
async def get_bookings(
    business_id: BusinessId,
    start_date: Annotated[date, Query(description="First day (inclusive)")],
    end_date: Annotated[date, Query(description="Last day (inclusive)")],
    booking_status: Annotated[BookingStatus | None, Query(alias="status")] = None,
    staff_member_id: Annotated[UUID | None, Query()] = None,
) -> list[BookingResponse]:
    bookings = await booking_query_service.list_bookings(
        business_id,
        start_date,
        end_date,
        status=booking_status,
        staff_member_id=staff_member_id,
    )
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(business_id: BusinessId, booking_id: UUID) -> BookingResponse:
    booking = await booking_query_service.get_booking(business_id, booking_id)
    return BookingResponse.model_validate(booking)


@router.post("/bookings/{booking_id}/transitions", response_model=TransitionResponse)
async def post_transition(
    business_id: BusinessId,
    booking_id: UUID,
    request: TransitionRequest,
):
    """
    Apply a lifecycle event.

    200 on success and on repeated cancels (error_code already_cancelled);
    409 for invalid transitions and slot conflicts.
    """
    payload = TransitionPayload(
        reason=request.reason,
        booking_date=request.booking_date,
        start_time=request.start_time,
        end_time=request.end_time,
    )
    result = await transition(business_id, booking_id, request.event, payload)
    return transition_response(result)


@router.post("/bookings/{booking_id}/confirm", response_model=TransitionResponse)
async def confirm_booking(business_id: BusinessId, booking_id: UUID):
    result = await transition(business_id, booking_id, BookingEvent.CONFIRM)
    return transition_response(result)


@router.post("/bookings/{booking_id}/cancel", response_model=TransitionResponse)
async def cancel_booking(
    business_id: BusinessId,
    booking_id: UUID,
    request: CancelRequest | None = None,
):
    """Business cancellation (admin_cancel: valid from any non-terminal state)."""
    result = await transition(
        business_id,
        booking_id,
        BookingEvent.ADMIN_CANCEL,
        TransitionPayload(reason=request.reason if request else None),
    )
    return transition_response(result)


@router.post("/bookings/{booking_id}/modification", response_model=TransitionResponse)
async def propose_modification(
    business_id: BusinessId,
    booking_id: UUID,
    request: ProposeModificationRequest,
):
    """
    Propose a new slot to the customer.

    The response carries the modification_url to send to the customer.
    Proposing again replaces the outstanding proposal and invalidates its link.
    """
    result = await transition(
        business_id,
        booking_id,
        BookingEvent.PROPOSE_MODIFICATION,
        TransitionPayload(
            reason=request.reason,
            booking_date=request.booking_date,
            start_time=request.start_time,
            end_time=request.end_time,
        ),
    )
    return transition_response(result)


@router.delete("/bookings/{booking_id}/modification", response_model=TransitionResponse)
async def discard_modification(business_id: BusinessId, booking_id: UUID):
    """Withdraw the outstanding proposal; the booking returns to confirmed."""
    result = await transition(business_id, booking_id, BookingEvent.DISCARD_MODIFICATION)
    return transition_response(result)


# =============================================================================
# Services
# =============================================================================


@router.get("/services", response_model=list[AdminServiceResponse])
async def get_services(business_id: BusinessId) -> list[AdminServiceResponse]:
    services = await catalog_service.list_services(business_id)
    return [AdminServiceResponse.model_validate(s) for s in services]


@router.post(
    "/services",
    status_code=status.HTTP_201_CREATED,
    response_model=AdminServiceResponse,
)
async def post_service(
    business_id: BusinessId,
    request: CreateServiceRequest,
) -> AdminServiceResponse:
    service = await catalog_service.create_service(
        business_id,
        name=request.name,
        duration_minutes=request.duration_minutes,
        description=request.description,
        price=request.price,
        requires_confirmation=request.requires_confirmation,
    )
    return AdminServiceResponse.model_validate(service)


@router.patch("/services/{service_id}", response_model=AdminServiceResponse)
async def patch_service(
    business_id: BusinessId,
    service_id: UUID,
    request: UpdateServiceRequest,
) -> AdminServiceResponse:
    """Partial update; only fields present in the body change."""
    service = await catalog_service.update_service(
        business_id, service_id, request.model_dump(exclude_unset=True)
    )
    return AdminServiceResponse.model_validate(service)


@router.delete("/services/{service_id}", response_model=AdminServiceResponse)
async def delete_service(business_id: BusinessId, service_id: UUID) -> AdminServiceResponse:
    """Soft-disable: the service stays on existing bookings but can no longer be booked."""
    service = await catalog_service.deactivate_service(business_id, service_id)
    return AdminServiceResponse.model_validate(service)


# =============================================================================
# Staff
# =============================================================================


@router.get("/staff", response_model=list[AdminStaffMemberResponse])
async def get_staff(business_id: BusinessId) -> list[AdminStaffMemberResponse]:
    staff = await catalog_service.list_staff_members(business_id)
    return [AdminStaffMemberResponse.model_validate(s) for s in staff]


@router.post(
    "/staff",
    status_code=status.HTTP_201_CREATED,
    response_model=AdminStaffMemberResponse,
)
async def post_staff_member(
    business_id: BusinessId,
    request: CreateStaffMemberRequest,
) -> AdminStaffMemberResponse:
    staff_member = await catalog_service.create_staff_member(
        business_id,
        name=request.name,
        email=request.email,
        phone=request.phone,
        role=request.role,
        service_ids=request.service_ids,
    )
    return AdminStaffMemberResponse.model_validate(staff_member)


@router.patch("/staff/{staff_member_id}", response_model=AdminStaffMemberResponse)
async def patch_staff_member(
    business_id: BusinessId,
    staff_member_id: UUID,
    request: UpdateStaffMemberRequest,
) -> AdminStaffMemberResponse:
    staff_member = await catalog_service.update_staff_member(
        business_id, staff_member_id, request.model_dump(exclude_unset=True)
    )
    return AdminStaffMemberResponse.model_validate(staff_member)


@router.delete("/staff/{staff_member_id}", response_model=AdminStaffMemberResponse)
async def delete_staff_member(
    business_id: BusinessId,
    staff_member_id: UUID,
) -> AdminStaffMemberResponse:
    """Deactivate; existing bookings keep their staff member."""
    staff_member = await catalog_service.deactivate_staff_member(business_id, staff_member_id)
    return AdminStaffMemberResponse.model_validate(staff_member)


@router.get("/staff/{staff_member_id}/services", response_model=StaffServicesResponse)
async def get_staff_services(
    business_id: BusinessId,
    staff_member_id: UUID,
) -> StaffServicesResponse:
    service_ids = await catalog_service.get_staff_services(business_id, staff_member_id)
    return StaffServicesResponse(staff_member_id=staff_member_id, service_ids=service_ids)


@router.put("/staff/{staff_member_id}/services", response_model=StaffServicesResponse)
async def put_staff_services(
    business_id: BusinessId,
    staff_member_id: UUID,
    request: StaffServicesRequest,
) -> StaffServicesResponse:
    """Replace the set of services the staff member offers; 404 on a foreign service."""
    service_ids = await catalog_service.set_staff_services(
        business_id, staff_member_id, request.service_ids
    )
    return StaffServicesResponse(staff_member_id=staff_member_id, service_ids=service_ids)


# =============================================================================
# Availability rules
# =============================================================================


@router.get("/availability-rules", response_model=list[AvailabilityRuleResponse])
async def get_availability_rules(
    business_id: BusinessId,
    staff_member_id: Annotated[UUID | None, Query(description="Staff scope")] = None,
) -> list[AvailabilityRuleResponse]:
    rules = await schedule_config_service.list_rules(business_id, staff_member_id)
    return [AvailabilityRuleResponse.model_validate(r) for r in rules]


@router.put("/availability-rules", response_model=AvailabilityRuleResponse)
async def put_availability_rule(
    business_id: BusinessId,
    request: AvailabilityRuleRequest,
) -> AvailabilityRuleResponse:
    """Create or replace the rule for (scope, day_of_week)."""
    rule = await schedule_config_service.upsert_rule(
        business_id,
        RuleInput(
            day_of_week=request.day_of_week,
            start_time=request.start_time,
            end_time=request.end_time,
            is_open=request.is_open,
            slot_duration_minutes=request.slot_duration_minutes,
            max_bookings_per_slot=request.max_bookings_per_slot,
        ),
        staff_member_id=request.staff_member_id,
    )
    return AvailabilityRuleResponse.model_validate(rule)


@router.delete("/availability-rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_availability_rule(business_id: BusinessId, rule_id: UUID) -> None:
    await schedule_config_service.delete_rule(business_id, rule_id)


# =============================================================================
# Blocked times
# =============================================================================


@router.get("/blocked-times", response_model=list[BlockedTimeResponse])
async def get_blocked_times(
    business_id: BusinessId,
    start_date: Annotated[date, Query()],
    end_date: Annotated[date, Query()],
    staff_member_id: Annotated[UUID | None, Query()] = None,
) -> list[BlockedTimeResponse]:
    blocked = await schedule_config_service.list_blocked_times(
        business_id, start_date, end_date, staff_member_id
    )
    return [BlockedTimeResponse.model_validate(b) for b in blocked]


@router.post(
    "/blocked-times",
    status_code=status.HTTP_201_CREATED,
    response_model=BlockedTimeResponse,
)
async def post_blocked_time(
    business_id: BusinessId,
    request: BlockedTimeRequest,
) -> BlockedTimeResponse:
    blocked = await schedule_config_service.create_blocked_time(
        business_id,
        request.start_at,
        request.end_at,
        reason=request.reason,
        staff_member_id=request.staff_member_id,
    )
    return BlockedTimeResponse.model_validate(blocked)


@router.delete("/blocked-times/{blocked_time_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_blocked_time(business_id: BusinessId, blocked_time_id: UUID) -> None:
    await schedule_config_service.delete_blocked_time(business_id, blocked_time_id)
