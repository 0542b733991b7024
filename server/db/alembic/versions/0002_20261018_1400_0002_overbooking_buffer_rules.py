"""Overbooking buffer rules

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-18 14:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: str | None = '0001'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.add_column('properties',
        sa.Column('default_buffer_percent', sa.Integer(), server_default=sa.text('0'), nullable=False)
    )
    op.create_check_constraint('ck_property_buffer_floor', 'properties', 'default_buffer_percent >= -100')

    op.create_table('buffer_rules',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('property_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('room_type_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('percent', sa.Integer(), nullable=False),
        sa.Column('days_of_week', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('end_date >= start_date', name='ck_buffer_rule_date_range'),
        sa.CheckConstraint('percent >= -100', name='ck_buffer_rule_percent_floor'),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['room_type_id'], ['room_types.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_buffer_rules_property_id'), 'buffer_rules', ['property_id'], unique=False)
    op.create_index(op.f('ix_buffer_rules_room_type_id'), 'buffer_rules', ['room_type_id'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f('ix_buffer_rules_room_type_id'), table_name='buffer_rules')
    op.drop_index(op.f('ix_buffer_rules_property_id'), table_name='buffer_rules')
    op.drop_table('buffer_rules')

    op.drop_constraint('ck_property_buffer_floor', 'properties', type_='check')
    op.drop_column('properties', 'default_buffer_percent')
