"""Initial lodging schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Catalog
    op.create_table('properties',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(name) > 0', name='ck_property_name_not_empty'),
        sa.CheckConstraint('length(currency) = 3', name='ck_property_currency_length'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('room_types',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('base_capacity', sa.Integer(), nullable=False),
        sa.Column('base_rate', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('max_occupancy', sa.Integer(), server_default=sa.text('2'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('base_capacity >= 0', name='ck_room_type_capacity_non_negative'),
        sa.CheckConstraint('base_rate >= 0', name='ck_room_type_rate_non_negative'),
        sa.CheckConstraint('max_occupancy > 0', name='ck_room_type_occupancy_positive'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_room_types_property_id'), 'room_types', ['property_id'], unique=False)

    op.create_table('rate_plans',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('room_type_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('nightly_rate', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('nightly_rate >= 0', name='ck_rate_plan_rate_non_negative'),
        sa.ForeignKeyConstraint(['room_type_id'], ['room_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_rate_plans_room_type_id'), 'rate_plans', ['room_type_id'], unique=False)

    op.create_table('cancellation_policies',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('tiers', sa.JSON(), nullable=False),
        sa.Column('no_show_fee_percent', sa.Integer(), nullable=True),
        sa.Column('no_show_flat_fee', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('length(name) > 0', name='ck_policy_name_not_empty'),
        sa.CheckConstraint(
            'no_show_fee_percent IS NULL OR (no_show_fee_percent >= 0 AND no_show_fee_percent <= 100)',
            name='ck_policy_no_show_percent_range',
        ),
        sa.CheckConstraint(
            'no_show_flat_fee IS NULL OR no_show_flat_fee >= 0',
            name='ck_policy_no_show_flat_non_negative',
        ),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cancellation_policies_property_id'), 'cancellation_policies', ['property_id'], unique=False)

    # Bookings
    op.create_table('bookings',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('guest_name', sa.String(length=255), nullable=False),
        sa.Column('guest_email', sa.String(length=320), nullable=True),
        sa.Column('guest_phone', sa.String(length=32), nullable=True),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('room_type_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('rate_plan_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('guests', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.Column('rooms', sa.Integer(), server_default=sa.text('1'), nullable=False),
        sa.Column('total_price', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('commission_pct', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('commission_amount', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='HOLD', nullable=False),
        sa.Column('source', sa.String(length=32), server_default='DIRECT_WEB', nullable=False),
        sa.Column('hold_token', sa.String(length=64), nullable=True),
        sa.Column('hold_expires_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_policy_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('external_reservation_id', sa.String(length=128), nullable=True),
        sa.Column('confirmation_code', sa.String(length=16), nullable=True),
        sa.Column('room_assignments', sa.JSON(), nullable=False),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('notes_internal', sa.Text(), nullable=True),
        sa.Column('notes_guest', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('checked_in_at', sa.DateTime(), nullable=True),
        sa.Column('checked_out_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('check_out > check_in', name='ck_booking_dates_ordered'),
        sa.CheckConstraint('total_price >= 0', name='ck_booking_total_price_non_negative'),
        sa.CheckConstraint('guests > 0', name='ck_booking_guests_positive'),
        sa.CheckConstraint('rooms > 0', name='ck_booking_rooms_positive'),
        sa.CheckConstraint('commission_amount >= 0', name='ck_booking_commission_non_negative'),
        sa.CheckConstraint('length(guest_name) > 0', name='ck_booking_guest_name_not_empty'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['room_type_id'], ['room_types.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['rate_plan_id'], ['rate_plans.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['cancellation_policy_id'], ['cancellation_policies.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('hold_token'),
        sa.UniqueConstraint('confirmation_code'),
        sa.UniqueConstraint('source', 'external_reservation_id', name='uq_booking_source_external_id')
    )
    op.create_index(op.f('ix_bookings_guest_email'), 'bookings', ['guest_email'], unique=False)
    op.create_index(op.f('ix_bookings_property_id'), 'bookings', ['property_id'], unique=False)
    op.create_index(op.f('ix_bookings_room_type_id'), 'bookings', ['room_type_id'], unique=False)
    op.create_index(op.f('ix_bookings_check_in'), 'bookings', ['check_in'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_source'), 'bookings', ['source'], unique=False)

    op.create_table('hold_records',
        sa.Column('hold_token', sa.String(length=64), nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('room_type_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('rooms', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='ACTIVE', nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('rooms > 0', name='ck_hold_rooms_positive'),
        sa.CheckConstraint('check_out > check_in', name='ck_hold_dates_ordered'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_type_id'], ['room_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('hold_token')
    )
    op.create_index(op.f('ix_hold_records_booking_id'), 'hold_records', ['booking_id'], unique=False)
    op.create_index(op.f('ix_hold_records_status'), 'hold_records', ['status'], unique=False)
    op.create_index(op.f('ix_hold_records_expires_at'), 'hold_records', ['expires_at'], unique=False)

    # Per-night counters
    op.create_table('inventory_days',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('room_type_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('day', sa.Date(), nullable=False),
        sa.Column('total_capacity', sa.Integer(), nullable=False),
        sa.Column('holds', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('confirmed', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('total_capacity >= 0', name='ck_inventory_day_total_non_negative'),
        sa.CheckConstraint('holds >= 0', name='ck_inventory_day_holds_non_negative'),
        sa.CheckConstraint('confirmed >= 0', name='ck_inventory_day_confirmed_non_negative'),
        sa.CheckConstraint('holds + confirmed <= total_capacity', name='ck_inventory_day_free_to_sell_non_negative'),
        sa.ForeignKeyConstraint(['room_type_id'], ['room_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_type_id', 'day', name='uq_inventory_day_room_type_date')
    )
    op.create_index(op.f('ix_inventory_days_room_type_id'), 'inventory_days', ['room_type_id'], unique=False)

    # Money and history
    op.create_table('payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('method', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='PENDING', nullable=False),
        sa.Column('external_txn_id', sa.String(length=128), nullable=True),
        sa.Column('original_payment_id', sa.Integer(), nullable=True),
        sa.Column('refunded_amount', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('recorded_by', sa.String(length=255), server_default='system', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('amount != 0', name='ck_payment_amount_nonzero'),
        sa.CheckConstraint('refunded_amount >= 0', name='ck_payment_refunded_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['original_payment_id'], ['payments.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_booking_id'), 'payments', ['booking_id'], unique=False)
    op.create_index(op.f('ix_payments_status'), 'payments', ['status'], unique=False)

    op.create_table('booking_audit_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('booking_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_booking_audit_log_booking_id'), 'booking_audit_log', ['booking_id'], unique=False)
    op.create_index(op.f('ix_booking_audit_log_created_at'), 'booking_audit_log', ['created_at'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f('ix_booking_audit_log_created_at'), table_name='booking_audit_log')
    op.drop_index(op.f('ix_booking_audit_log_booking_id'), table_name='booking_audit_log')
    op.drop_table('booking_audit_log')

    op.drop_index(op.f('ix_payments_status'), table_name='payments')
    op.drop_index(op.f('ix_payments_booking_id'), table_name='payments')
    op.drop_table('payments')

    op.drop_index(op.f('ix_inventory_days_room_type_id'), table_name='inventory_days')
    op.drop_table('inventory_days')

    op.drop_index(op.f('ix_hold_records_expires_at'), table_name='hold_records')
    op.drop_index(op.f('ix_hold_records_status'), table_name='hold_records')
    op.drop_index(op.f('ix_hold_records_booking_id'), table_name='hold_records')
    op.drop_table('hold_records')

    op.drop_index(op.f('ix_bookings_source'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_status'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_check_in'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_room_type_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_property_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_guest_email'), table_name='bookings')
    op.drop_table('bookings')

    op.drop_index(op.f('ix_cancellation_policies_property_id'), table_name='cancellation_policies')
    op.drop_table('cancellation_policies')

    op.drop_index(op.f('ix_rate_plans_room_type_id'), table_name='rate_plans')
    op.drop_table('rate_plans')

    op.drop_index(op.f('ix_room_types_property_id'), table_name='room_types')
    op.drop_table('room_types')

    op.drop_table('properties')
