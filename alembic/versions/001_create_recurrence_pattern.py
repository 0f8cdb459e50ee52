"""Create recurrence_pattern table

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'recurrence_pattern',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('task_id', sa.String(length=100), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('frequency', sa.String(length=20), nullable=False),
        sa.Column('interval', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('days_of_week', sa.JSON(), nullable=True),
        sa.Column('day_of_month', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('next_run_at', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('last_triggered_at', sa.DateTime(), nullable=True),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # One pattern per task
    op.create_index('ix_recurrence_pattern_task_id', 'recurrence_pattern', ['task_id'], unique=True)
    op.create_index('ix_recurrence_pattern_user_id', 'recurrence_pattern', ['user_id'])
    # Due-pattern scan
    op.create_index('idx_recurrence_next', 'recurrence_pattern', ['status', 'next_run_at'])


def downgrade() -> None:
    op.drop_index('idx_recurrence_next', table_name='recurrence_pattern')
    op.drop_index('ix_recurrence_pattern_user_id', table_name='recurrence_pattern')
    op.drop_index('ix_recurrence_pattern_task_id', table_name='recurrence_pattern')
    op.drop_table('recurrence_pattern')
