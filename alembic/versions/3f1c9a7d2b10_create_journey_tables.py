"""create_journey_tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create planned stop, stop event and journey summary tables."""
    op.create_table(
        'planned_route_stops',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('route_id', sa.String(), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('session', sa.String(), nullable=False),
        sa.Column('stop_order', sa.Integer(), nullable=False),
        sa.Column('delivery_id', sa.String(), nullable=True),
        sa.Column('delivery_name', sa.String(), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('planned_arrival_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('driver_id', sa.String(), nullable=True),
        sa.Column('reoptimized_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('route_id', 'delivery_date', 'session', 'stop_order', name='uq_planned_stop_order'),
    )
    op.create_index('ix_planned_route_stops_route_date', 'planned_route_stops', ['route_id', 'delivery_date'])

    op.create_table(
        'actual_route_stops',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('route_id', sa.String(), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('session', sa.String(), nullable=False),
        sa.Column('stop_order', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('planned_stop_id', sa.String(), nullable=True),
        sa.Column('delivery_id', sa.String(), nullable=True),
        sa.Column('delivery_status', sa.String(), nullable=True),
        sa.Column('actual_completion_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('route_id', 'delivery_date', 'session', 'stop_order', name='uq_actual_stop_key'),
    )
    op.create_index('ix_actual_route_stops_id', 'actual_route_stops', ['id'])
    op.create_index('ix_actual_route_stops_route_date', 'actual_route_stops', ['route_id', 'delivery_date'])

    op.create_table(
        'route_journey_summary',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('route_id', sa.String(), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('session', sa.String(), nullable=False),
        sa.Column('driver_id', sa.String(), nullable=False),
        sa.Column('actual_start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('journey_ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_duration_minutes', sa.Float(), nullable=True),
        sa.Column('end_latitude', sa.Float(), nullable=True),
        sa.Column('end_longitude', sa.Float(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('route_id', 'delivery_date', 'session', 'driver_id', name='uq_journey_summary_key'),
    )
    op.create_index('ix_route_journey_summary_id', 'route_journey_summary', ['id'])
    op.create_index('ix_route_journey_summary_route_id', 'route_journey_summary', ['route_id'])


def downgrade() -> None:
    """Drop journey tables."""
    op.drop_index('ix_route_journey_summary_route_id', table_name='route_journey_summary')
    op.drop_index('ix_route_journey_summary_id', table_name='route_journey_summary')
    op.drop_table('route_journey_summary')
    op.drop_index('ix_actual_route_stops_route_date', table_name='actual_route_stops')
    op.drop_index('ix_actual_route_stops_id', table_name='actual_route_stops')
    op.drop_table('actual_route_stops')
    op.drop_index('ix_planned_route_stops_route_date', table_name='planned_route_stops')
    op.drop_table('planned_route_stops')
