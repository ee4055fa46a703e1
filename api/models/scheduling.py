"""Pydantic request/response models for the scheduling API."""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

import phonenumbers
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from scheduling.fsm.models import BookingEvent
from shared.config import get_settings


def normalize_phone(v: str | None) -> str | None:
    """Validate and normalize phone number to E.164 format."""
    if v is None or not v.strip():
        return None
    try:
        # Numbers without a country code use the configured default region
        parsed = phonenumbers.parse(v, get_settings().DEFAULT_PHONE_REGION)
        if not phonenumbers.is_valid_number(parsed):
            raise ValueError(f"Invalid phone number: {v}")
        return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)
    except phonenumbers.NumberParseException as e:
        raise ValueError(f"Cannot parse phone number {v}: {e}") from e


# ============================================================================
# Catalog
# ============================================================================


class BusinessResponse(BaseModel):
    id: UUID
    name: str
    slug: str
    description: str | None = None
    timezone: str

    class Config:
        from_attributes = True


class ServiceResponse(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    duration_minutes: int
    price: Decimal | None = None
    requires_confirmation: bool

    class Config:
        from_attributes = True


class StaffMemberResponse(BaseModel):
    id: UUID
    name: str
    role: str | None = None

    class Config:
        from_attributes = True


class PublicBusinessResponse(BaseModel):
    business: BusinessResponse
    services: list[ServiceResponse]
    staff_members: list[StaffMemberResponse]


class AdminServiceResponse(ServiceResponse):
    """Service as seen by the business, inactive ones included."""

    is_active: bool


class CreateServiceRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    duration_minutes: int = Field(..., gt=0, le=24 * 60)
    price: Decimal | None = Field(None, ge=0)
    requires_confirmation: bool = False


class UpdateServiceRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    price: Decimal | None = Field(None, ge=0)
    is_active: bool | None = None
    requires_confirmation: bool | None = None


class AdminStaffMemberResponse(StaffMemberResponse):
    """Staff member as seen by the business."""

    email: str | None = None
    phone: str | None = None
    is_active: bool


class CreateStaffMemberRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    role: str | None = Field(None, max_length=100)
    service_ids: list[UUID] = Field(default_factory=list)

    @field_validator("phone")
    @classmethod
    def validate_phone_e164(cls, v: str | None) -> str | None:
        return normalize_phone(v)


class UpdateStaffMemberRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=50)
    role: str | None = Field(None, max_length=100)
    is_active: bool | None = None

    @field_validator("phone")
    @classmethod
    def validate_phone_e164(cls, v: str | None) -> str | None:
        return normalize_phone(v)


class StaffServicesRequest(BaseModel):
    service_ids: list[UUID]


class StaffServicesResponse(BaseModel):
    staff_member_id: UUID
    service_ids: list[UUID]


# ============================================================================
# Slots
# ============================================================================


class SlotResponse(BaseModel):
    date: date
    start_time: time
    end_time: time
    remaining_capacity: int
    available: bool
    staff_member_id: UUID | None = None


class SlotsResponse(BaseModel):
    service_id: UUID
    staff_member_id: UUID | None = None
    start_date: date
    end_date: date
    slots: list[SlotResponse]


# ============================================================================
# Bookings
# ============================================================================


class CreateBookingRequest(BaseModel):
    service_id: UUID
    staff_member_id: UUID | None = None
    booking_date: date
    start_time: time
    end_time: time | None = None
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: EmailStr
    customer_phone: str | None = Field(None, max_length=50)
    customer_notes: str | None = Field(None, max_length=2000)

    @field_validator("customer_phone")
    @classmethod
    def validate_phone_e164(cls, v: str | None) -> str | None:
        return normalize_phone(v)


class BookingResponse(BaseModel):
    """Booking as seen by the business."""

    id: UUID
    service_id: UUID
    staff_member_id: UUID | None = None
    customer_id: UUID | None = None
    customer_name: str
    customer_email: str
    customer_phone: str | None = None
    customer_notes: str | None = None
    booking_date: date
    start_time: time
    end_time: time
    status: str
    proposed_booking_date: date | None = None
    proposed_start_time: time | None = None
    proposed_end_time: time | None = None
    modification_reason: str | None = None
    modification_token_expires_at: datetime | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("status", mode="before")
    @classmethod
    def status_value(cls, v: Any) -> str:
        return getattr(v, "value", v)

    class Config:
        from_attributes = True


class CustomerBookingResponse(BaseModel):
    """Booking as seen through a customer link (no internal ids or tokens)."""

    id: UUID
    service_id: UUID
    staff_member_id: UUID | None = None
    customer_name: str
    booking_date: date
    start_time: time
    end_time: time
    status: str
    proposed_booking_date: date | None = None
    proposed_start_time: time | None = None
    proposed_end_time: time | None = None
    modification_reason: str | None = None
    modification_token_expires_at: datetime | None = None
    cancellation_reason: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def status_value(cls, v: Any) -> str:
        return getattr(v, "value", v)

    class Config:
        from_attributes = True


class CreatedBookingResponse(BaseModel):
    booking: CustomerBookingResponse
    customer_action_token: str
    manage_url: str


class ConflictResponse(BaseModel):
    error: str
    reason: str
    message: str


# ============================================================================
# Transitions
# ============================================================================


class TransitionRequest(BaseModel):
    event: BookingEvent
    reason: str | None = Field(None, max_length=2000)
    booking_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None


class ProposeModificationRequest(BaseModel):
    booking_date: date
    start_time: time
    end_time: time | None = None
    reason: str | None = Field(None, max_length=2000)


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=2000)


class RescheduleRequest(BaseModel):
    booking_date: date
    start_time: time
    end_time: time | None = None


class TransitionResponse(BaseModel):
    success: bool
    booking_id: UUID | None = None
    event: str | None = None
    previous_status: str | None = None
    new_status: str | None = None
    error_code: str | None = None
    conflict: str | None = None
    message: str = ""
    modification_url: str | None = None


# ============================================================================
# Schedule configuration
# ============================================================================


class AvailabilityRuleRequest(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Monday ... 6 = Sunday")
    start_time: time
    end_time: time
    is_open: bool = True
    slot_duration_minutes: int | None = Field(None, gt=0, le=24 * 60)
    max_bookings_per_slot: int | None = Field(None, gt=0)
    staff_member_id: UUID | None = None

    @model_validator(mode="after")
    def reject_overnight(self) -> "AvailabilityRuleRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time (overnight ranges are not supported)")
        return self


class AvailabilityRuleResponse(BaseModel):
    id: UUID
    staff_member_id: UUID | None = None
    day_of_week: int
    start_time: time
    end_time: time
    is_open: bool
    slot_duration_minutes: int
    max_bookings_per_slot: int

    class Config:
        from_attributes = True


class BlockedTimeRequest(BaseModel):
    start_at: datetime
    end_at: datetime
    reason: str | None = Field(None, max_length=255)
    staff_member_id: UUID | None = None


class BlockedTimeResponse(BaseModel):
    id: UUID
    staff_member_id: UUID | None = None
    start_at: datetime
    end_at: datetime
    reason: str | None = None

    class Config:
        from_attributes = True
