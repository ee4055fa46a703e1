"""initial scheduling schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BOOKING_STATUS_VALUES = ('pending', 'confirmed', 'modification_pending', 'cancelled')
NOTIFICATION_TYPE_VALUES = (
    'booking_created',
    'booking_confirmed',
    'booking_cancelled',
    'booking_rescheduled',
    'modification_proposed',
    'modification_accepted',
    'modification_discarded',
    'modification_conflict',
)


def _uuid_pk() -> sa.Column:
    return sa.Column('id', sa.UUID(), nullable=False, server_default=sa.text('gen_random_uuid()'))


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def _updated_at() -> sa.Column:
    return sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade() -> None:
    # Enums
    booking_status = postgresql.ENUM(*BOOKING_STATUS_VALUES, name='booking_status', create_type=False)
    booking_status.create(op.get_bind(), checkfirst=True)
    notification_type = postgresql.ENUM(*NOTIFICATION_TYPE_VALUES, name='notification_type', create_type=False)
    notification_type.create(op.get_bind(), checkfirst=True)

    # Tenant tables
    op.create_table(
        'businesses',
        _uuid_pk(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_businesses_slug', 'businesses', ['slug'], unique=True)

    op.create_table(
        'services',
        _uuid_pk(),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('requires_confirmation', sa.Boolean(), nullable=False, server_default='false'),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.CheckConstraint('duration_minutes > 0', name='check_service_duration_positive'),
    )
    op.create_index('ix_services_business_id', 'services', ['business_id'])
    op.create_index('idx_services_business_active', 'services', ['business_id'],
                    postgresql_where=sa.text('is_active = true'))

    op.create_table(
        'staff_members',
        _uuid_pk(),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('role', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_staff_members_business_id', 'staff_members', ['business_id'])

    op.create_table(
        'staff_member_services',
        sa.Column('staff_member_id', sa.UUID(), nullable=False),
        sa.Column('service_id', sa.UUID(), nullable=False),
        sa.PrimaryKeyConstraint('staff_member_id', 'service_id'),
        sa.ForeignKeyConstraint(['staff_member_id'], ['staff_members.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ondelete='CASCADE'),
    )

    # Schedule tables
    op.create_table(
        'availability_rules',
        _uuid_pk(),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('staff_member_id', sa.UUID(), nullable=True),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.TIME(timezone=False), nullable=False),
        sa.Column('end_time', sa.TIME(timezone=False), nullable=False),
        sa.Column('is_open', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('slot_duration_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('max_bookings_per_slot', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['staff_member_id'], ['staff_members.id'], ondelete='CASCADE'),
        sa.CheckConstraint('day_of_week >= 0 AND day_of_week <= 6', name='valid_rule_day_of_week'),
        sa.CheckConstraint('end_time > start_time', name='check_rule_end_after_start'),
        sa.CheckConstraint('slot_duration_minutes > 0', name='check_rule_slot_duration_positive'),
        sa.CheckConstraint('max_bookings_per_slot > 0', name='check_rule_capacity_positive'),
    )
    op.create_index('ix_availability_rules_business_id', 'availability_rules', ['business_id'])
    op.create_index('ix_availability_rules_staff_member_id', 'availability_rules', ['staff_member_id'])
    op.create_index('uq_availability_rules_business_day', 'availability_rules',
                    ['business_id', 'day_of_week'], unique=True,
                    postgresql_where=sa.text('staff_member_id IS NULL'))
    op.create_index('uq_availability_rules_staff_day', 'availability_rules',
                    ['staff_member_id', 'day_of_week'], unique=True,
                    postgresql_where=sa.text('staff_member_id IS NOT NULL'))

    op.create_table(
        'blocked_times',
        _uuid_pk(),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('staff_member_id', sa.UUID(), nullable=True),
        sa.Column('start_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.Column('end_at', sa.TIMESTAMP(timezone=False), nullable=False),
        sa.Column('reason', sa.String(255), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['staff_member_id'], ['staff_members.id'], ondelete='CASCADE'),
        sa.CheckConstraint('end_at > start_at', name='check_blocked_end_after_start'),
    )
    op.create_index('idx_blocked_times_business_range', 'blocked_times',
                    ['business_id', 'start_at', 'end_at'])

    # Customers
    op.create_table(
        'customers',
        _uuid_pk(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_customers_email', 'customers', ['email'], unique=True)

    # Bookings
    op.create_table(
        'bookings',
        _uuid_pk(),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('service_id', sa.UUID(), nullable=False),
        sa.Column('staff_member_id', sa.UUID(), nullable=True),
        sa.Column('customer_id', sa.UUID(), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=False),
        sa.Column('customer_email', sa.String(255), nullable=False),
        sa.Column('customer_phone', sa.String(50), nullable=True),
        sa.Column('customer_notes', sa.Text(), nullable=True),
        sa.Column('booking_date', sa.DATE(), nullable=False),
        sa.Column('start_time', sa.TIME(timezone=False), nullable=False),
        sa.Column('end_time', sa.TIME(timezone=False), nullable=False),
        sa.Column('status', postgresql.ENUM(*BOOKING_STATUS_VALUES, name='booking_status',
                                            create_type=False), nullable=False),
        sa.Column('customer_action_token', sa.String(255), nullable=False),
        sa.Column('proposed_booking_date', sa.DATE(), nullable=True),
        sa.Column('proposed_start_time', sa.TIME(timezone=False), nullable=True),
        sa.Column('proposed_end_time', sa.TIME(timezone=False), nullable=True),
        sa.Column('modification_reason', sa.Text(), nullable=True),
        sa.Column('modification_token', sa.String(255), nullable=True),
        sa.Column('modification_token_expires_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['service_id'], ['services.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['staff_member_id'], ['staff_members.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('customer_action_token'),
        sa.UniqueConstraint('modification_token'),
        sa.CheckConstraint('end_time > start_time', name='check_booking_end_after_start'),
    )
    op.create_index('ix_bookings_service_id', 'bookings', ['service_id'])
    op.create_index('ix_bookings_customer_id', 'bookings', ['customer_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('idx_bookings_business_date', 'bookings', ['business_id', 'booking_date'])
    op.create_index('idx_bookings_staff_date', 'bookings', ['staff_member_id', 'booking_date'])

    op.create_table(
        'modification_tokens',
        _uuid_pk(),
        sa.Column('token', sa.String(255), nullable=False),
        sa.Column('booking_id', sa.UUID(), nullable=False),
        sa.Column('proposed_booking_date', sa.DATE(), nullable=False),
        sa.Column('proposed_start_time', sa.TIME(timezone=False), nullable=False),
        sa.Column('proposed_end_time', sa.TIME(timezone=False), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('used_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('revoked_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('revoke_reason', sa.String(50), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('token'),
    )
    op.create_index('ix_modification_tokens_booking_id', 'modification_tokens', ['booking_id'])

    # Allocation lock buckets
    op.create_table(
        'schedule_locks',
        _uuid_pk(),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('scope_key', sa.String(64), nullable=False),
        sa.Column('lock_date', sa.DATE(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('business_id', 'scope_key', 'lock_date', name='uq_schedule_lock_bucket'),
    )

    # Notifications
    op.create_table(
        'notifications',
        _uuid_pk(),
        sa.Column('business_id', sa.UUID(), nullable=False),
        sa.Column('booking_id', sa.UUID(), nullable=True),
        sa.Column('type', postgresql.ENUM(*NOTIFICATION_TYPE_VALUES, name='notification_type',
                                          create_type=False), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='false'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_notifications_business_id', 'notifications', ['business_id'])
    op.create_index('idx_notifications_business_unread', 'notifications',
                    ['business_id', 'is_read', 'created_at'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('schedule_locks')
    op.drop_table('modification_tokens')
    op.drop_table('bookings')
    op.drop_table('customers')
    op.drop_table('blocked_times')
    op.drop_table('availability_rules')
    op.drop_table('staff_member_services')
    op.drop_table('staff_members')
    op.drop_table('services')
    op.drop_table('businesses')

    op.execute('DROP TYPE IF EXISTS notification_type')
    op.execute('DROP TYPE IF EXISTS booking_status')
