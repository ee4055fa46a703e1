"""
SQLAlchemy ORM models for the scheduling engine.

This module defines the tables:
- businesses: Tenant root (unique public slug)
- services: Bookable services with duration and confirmation policy
- staff_members: Staff with a service capability set and their own schedule
- availability_rules: Recurring weekly availability (business-wide or per staff member)
- blocked_times: One-off blackout ranges (holidays, vacations)
- customers: Repeat-customer identity (email)
- bookings: Reservations and their lifecycle state
- modification_tokens: Issuance ledger for single-use modification tokens
- schedule_locks: Lock rows serializing allocation per (business, scope, date)
- notifications: Business-facing lifecycle notifications

All models use:
- UUID primary keys (auto-generated)
- TIMESTAMP WITH TIME ZONE for audit timestamps
- Business-local wall-clock DATE/TIME (no timezone) for schedule data
"""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    DATE,
    TIME,
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy import (
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# ============================================================================
# Base Class
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


# ============================================================================
# Enums
# ============================================================================


class BookingStatus(str, PyEnum):
    """Booking lifecycle status."""

    PENDING = "pending"                              # Awaiting business confirmation
    CONFIRMED = "confirmed"
    MODIFICATION_PENDING = "modification_pending"    # Business proposed a new slot
    CANCELLED = "cancelled"                          # Terminal

    def __str__(self):
        return self.value


# Statuses that occupy capacity. A modification-pending booking still holds its original slot.
ACTIVE_BOOKING_STATUSES = (
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.MODIFICATION_PENDING,
)


class NotificationType(str, PyEnum):
    """Type of business-facing notification."""

    BOOKING_CREATED = "booking_created"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_RESCHEDULED = "booking_rescheduled"
    MODIFICATION_PROPOSED = "modification_proposed"
    MODIFICATION_ACCEPTED = "modification_accepted"
    MODIFICATION_DISCARDED = "modification_discarded"
    MODIFICATION_CONFLICT = "modification_conflict"


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


# ============================================================================
# Tenant Models
# ============================================================================


class Business(Base):
    """
    Business model - Tenant root.

    Owns services, staff, availability rules, blocked times and bookings.
    Deleting a business cascades to everything it owns.
    """

    __tablename__ = "businesses"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Informational only: schedule data is stored as local wall-clock time
    timezone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    services: Mapped[list["Service"]] = relationship(
        "Service", back_populates="business", cascade="all, delete-orphan", passive_deletes=True
    )
    staff_members: Mapped[list["StaffMember"]] = relationship(
        "StaffMember", back_populates="business", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Business(id={self.id}, slug='{self.slug}')>"


staff_member_services = Table(
    "staff_member_services",
    Base.metadata,
    Column(
        "staff_member_id",
        PGUUID(as_uuid=True),
        ForeignKey("staff_members.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "service_id",
        PGUUID(as_uuid=True),
        ForeignKey("services.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Service(Base):
    """
    Service model - Bookable services with duration.

    Services are soft-disabled through is_active rather than deleted while
    bookings reference them (bookings.service_id is ON DELETE RESTRICT).
    """

    __tablename__ = "services"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    business_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    # Stored for display only; the engine never computes prices
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # New bookings start PENDING instead of CONFIRMED
    requires_confirmation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    business: Mapped["Business"] = relationship("Business", back_populates="services")
    staff_members: Mapped[list["StaffMember"]] = relationship(
        "StaffMember", secondary=staff_member_services, back_populates="services"
    )

    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="check_service_duration_positive"),
        Index(
            "idx_services_business_active",
            "business_id",
            postgresql_where=text("is_active = true"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}', duration={self.duration_minutes})>"


class StaffMember(Base):
    """
    StaffMember model - Business staff with an independent weekly schedule.

    A staff member can only be booked for services in their capability set.
    """

    __tablename__ = "staff_members"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    business_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    business: Mapped["Business"] = relationship("Business", back_populates="staff_members")
    services: Mapped[list["Service"]] = relationship(
        "Service", secondary=staff_member_services, back_populates="staff_members"
    )

    def __repr__(self) -> str:
        return f"<StaffMember(id={self.id}, name='{self.name}')>"


# ============================================================================
# Schedule Models
# ============================================================================


class AvailabilityRule(Base):
    """
    AvailabilityRule model - Recurring weekly availability.

    Scope is business-wide when staff_member_id is NULL, otherwise the rule
    belongs to one staff member. At most one rule per (scope, day_of_week).

    Day of week: 0=Monday, 1=Tuesday, ..., 6=Sunday
    """

    __tablename__ = "availability_rules"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    business_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    staff_member_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("staff_members.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(TIME(timezone=False), nullable=False)
    end_time: Mapped[time] = mapped_column(TIME(timezone=False), nullable=False)
    is_open: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    max_bookings_per_slot: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="valid_rule_day_of_week"),
        # Overnight ranges are invalid configuration, not wrapped to the next day
        CheckConstraint("end_time > start_time", name="check_rule_end_after_start"),
        CheckConstraint("slot_duration_minutes > 0", name="check_rule_slot_duration_positive"),
        CheckConstraint("max_bookings_per_slot > 0", name="check_rule_capacity_positive"),
        # One rule per day for the business scope...
        Index(
            "uq_availability_rules_business_day",
            "business_id",
            "day_of_week",
            unique=True,
            postgresql_where=text("staff_member_id IS NULL"),
        ),
        # ...and one rule per day for each staff member
        Index(
            "uq_availability_rules_staff_day",
            "staff_member_id",
            "day_of_week",
            unique=True,
            postgresql_where=text("staff_member_id IS NOT NULL"),
        ),
    )

    def __repr__(self) -> str:
        scope = f"staff={self.staff_member_id}" if self.staff_member_id else "business"
        if not self.is_open:
            return f"<AvailabilityRule({scope}, day={self.day_of_week}, CLOSED)>"
        return (
            f"<AvailabilityRule({scope}, day={self.day_of_week}, "
            f"{self.start_time:%H:%M}-{self.end_time:%H:%M})>"
        )


class BlockedTime(Base):
    """
    BlockedTime model - Absolute blackout ranges overriding availability.

    Business-wide when staff_member_id is NULL (applies to every scope),
    otherwise removes availability for one staff member only.
    """

    __tablename__ = "blocked_times"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    business_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    staff_member_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("staff_members.id", ondelete="CASCADE"),
        nullable=True,
    )

    # Local wall-clock range [start_at, end_at)
    start_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), nullable=False)
    end_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=False), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False
    )

    __table_args__ = (
        CheckConstraint("end_at > start_at", name="check_blocked_end_after_start"),
        # Composite index for efficient overlap queries
        Index("idx_blocked_times_business_range", "business_id", "start_at", "end_at"),
    )

    def __repr__(self) -> str:
        return f"<BlockedTime(id={self.id}, {self.start_at} -> {self.end_at})>"


# ============================================================================
# Customer Models
# ============================================================================


class Customer(Base):
    """
    Customer model - Identity for repeat customers.

    Email is the primary identifier.
    """

    __tablename__ = "customers"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, email='{self.email}')>"


# ============================================================================
# Transactional Models
# ============================================================================


class Booking(Base):
    """
    Booking model - Reservations with lifecycle state.

    Created by the allocator and mutated only through the booking state
    machine. Never hard-deleted: cancellation is a terminal status.

    While status is MODIFICATION_PENDING the original booking_date /
    start_time / end_time remain the binding reservation; the proposed_*
    fields are not reserved until the customer confirms.
    """

    __tablename__ = "bookings"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )

    # Foreign keys
    business_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Services are only soft-disabled through the API; rows go away with their business
    service_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    staff_member_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("staff_members.id", ondelete="SET NULL"),
        nullable=True,
    )
    customer_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Customer data captured at booking time
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Scheduling (business-local wall clock)
    booking_date: Mapped[date] = mapped_column(DATE, nullable=False)
    start_time: Mapped[time] = mapped_column(TIME(timezone=False), nullable=False)
    end_time: Mapped[time] = mapped_column(TIME(timezone=False), nullable=False)

    # Status tracking
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            values_callable=_enum_values,
        ),
        default=BookingStatus.CONFIRMED,
        nullable=False,
        index=True,
    )

    # Permanent self-service identifier (view / cancel / reschedule)
    customer_action_token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Pending modification proposal
    proposed_booking_date: Mapped[date | None] = mapped_column(DATE, nullable=True)
    proposed_start_time: Mapped[time | None] = mapped_column(TIME(timezone=False), nullable=True)
    proposed_end_time: Mapped[time | None] = mapped_column(TIME(timezone=False), nullable=True)
    modification_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    modification_token: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    modification_token_expires_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    # Cancellation
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    service: Mapped["Service"] = relationship("Service")
    staff_member: Mapped[Optional["StaffMember"]] = relationship("StaffMember")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="check_booking_end_after_start"),
        # Overlap queries per scope and day
        Index("idx_bookings_business_date", "business_id", "booking_date"),
        Index("idx_bookings_staff_date", "staff_member_id", "booking_date"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, date={self.booking_date}, status='{self.status.value}')>"


class IssuedModificationToken(Base):
    """
    IssuedModificationToken model - Ledger of issued modification tokens.

    The booking only carries its current token; this ledger keeps every
    issued token so resolution can tell an unknown token from an expired,
    revoked or already-used one.
    """

    __tablename__ = "modification_tokens"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    booking_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    proposed_booking_date: Mapped[date] = mapped_column(DATE, nullable=False)
    proposed_start_time: Mapped[time] = mapped_column(TIME(timezone=False), nullable=False)
    proposed_end_time: Mapped[time] = mapped_column(TIME(timezone=False), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    revoke_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False
    )

    def __repr__(self) -> str:
        return f"<IssuedModificationToken(booking_id={self.booking_id}, expires_at={self.expires_at})>"


class ScheduleLock(Base):
    """
    ScheduleLock model - One row per contended (business, scope, date) bucket.

    Allocation and rescheduling lock this row (SELECT ... FOR UPDATE) before
    re-checking capacity, which linearizes concurrent writers on the same
    bucket across workers. scope_key is the staff member id or "business".
    """

    __tablename__ = "schedule_locks"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    business_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
    )
    scope_key: Mapped[str] = mapped_column(String(64), nullable=False)
    lock_date: Mapped[date] = mapped_column(DATE, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("business_id", "scope_key", "lock_date", name="uq_schedule_lock_bucket"),
    )


# ============================================================================
# Notification Models
# ============================================================================


class Notification(Base):
    """
    Notification model - Business-facing lifecycle notifications.

    Written after a transition commits; failures never roll back the transition.
    """

    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True), primary_key=True, default=uuid4
    )
    business_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=True,
    )

    type: Mapped[NotificationType] = mapped_column(
        SQLEnum(
            NotificationType,
            name="notification_type",
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False
    )

    __table_args__ = (
        Index("idx_notifications_business_unread", "business_id", "is_read", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type='{self.type.value}')>"
