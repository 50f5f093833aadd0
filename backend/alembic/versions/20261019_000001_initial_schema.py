"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Creates the four Standup Pulse tables: standup_entry, performance_metric,
alert and achievement, with the unique keys the service upserts rely on.

For databases created by DatabaseService.create_tables(): run `alembic stamp head`.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all initial tables."""

    # Standup entry table
    op.create_table(
        'standup_entry',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('workspace_id', sa.String(64), nullable=False),
        sa.Column('person_id', sa.String(64), nullable=False),
        sa.Column('person_name', sa.String(255), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('yesterday', sa.Text(), nullable=False),
        sa.Column('today', sa.Text(), nullable=False),
        sa.Column('blockers', sa.Text(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=False),
        sa.Column('yesterday_hours_estimate', sa.Float(), nullable=True),
        sa.Column('today_hours_estimate', sa.Float(), nullable=True),
        sa.Column('sentiment_eligible', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('source', sa.String(20), nullable=False, server_default='api'),
        sa.Column('submitted_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('person_id', 'entry_date', name='uq_standup_entry_person_date'),
    )
    op.create_index('ix_standup_entry_workspace_id', 'standup_entry', ['workspace_id'])
    op.create_index('ix_standup_entry_person_id', 'standup_entry', ['person_id'])
    op.create_index('ix_standup_entry_entry_date', 'standup_entry', ['entry_date'])
    op.create_index('ix_standup_entry_workspace_date', 'standup_entry', ['workspace_id', 'entry_date'])

    # Performance metric table
    op.create_table(
        'performance_metric',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('workspace_id', sa.String(64), nullable=False),
        sa.Column('person_id', sa.String(64), nullable=False),
        sa.Column('person_name', sa.String(255), nullable=False),
        sa.Column('period', sa.String(10), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('total_submissions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expected_submissions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consistency_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_tasks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_hours_estimated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_tasks_per_day', sa.Float(), nullable=False, server_default='0'),
        sa.Column('velocity_trend', sa.String(20), nullable=False, server_default='stable'),
        sa.Column('blocker_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('blocker_frequency', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('recurring_blockers', sa.JSON(), nullable=False),
        sa.Column('engagement_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('average_submission_time', sa.String(5), nullable=False, server_default='00:00'),
        sa.Column('late_submissions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sentiment_score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('sentiment_trend', sa.String(20), nullable=False, server_default='stable'),
        sa.Column('risk_level', sa.String(10), nullable=False, server_default='low'),
        sa.Column('risk_factors', sa.JSON(), nullable=False),
        sa.Column('risk_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('overall_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('team_average_score', sa.Integer(), nullable=True),
        sa.Column('percentile_rank', sa.Integer(), nullable=True),
        sa.Column('computed_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('person_id', 'period', 'start_date', name='uq_performance_metric_person_period_start'),
    )
    op.create_index('ix_performance_metric_workspace_id', 'performance_metric', ['workspace_id'])
    op.create_index('ix_performance_metric_person_id', 'performance_metric', ['person_id'])
    op.create_index(
        'ix_performance_metric_workspace_period', 'performance_metric',
        ['workspace_id', 'period', 'start_date'],
    )

    # Alert table
    op.create_table(
        'alert',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('workspace_id', sa.String(64), nullable=False),
        sa.Column('alert_type', sa.String(40), nullable=False),
        sa.Column('severity', sa.String(10), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('person_id', sa.String(64), nullable=False),
        sa.Column('person_name', sa.String(255), nullable=False),
        sa.Column('metric', sa.String(64), nullable=True),
        sa.Column('current_value', sa.Float(), nullable=True),
        sa.Column('threshold', sa.Float(), nullable=True),
        sa.Column('related_entry_ids', sa.JSON(), nullable=False),
        sa.Column('suggested_actions', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('occurrence_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_occurrence', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_alert_dedup', 'alert', ['workspace_id', 'alert_type', 'person_id', 'status'])
    op.create_index('ix_alert_status_expires', 'alert', ['status', 'expires_at'])

    # Achievement table
    op.create_table(
        'achievement',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('workspace_id', sa.String(64), nullable=False),
        sa.Column('person_id', sa.String(64), nullable=False),
        sa.Column('person_name', sa.String(255), nullable=False),
        sa.Column('achievement_type', sa.String(20), nullable=False),
        sa.Column('badge_name', sa.String(100), nullable=False),
        sa.Column('badge_icon', sa.String(32), nullable=False),
        sa.Column('description', sa.String(255), nullable=False),
        sa.Column('level', sa.String(10), nullable=False),
        sa.Column('threshold', sa.Float(), nullable=False),
        sa.Column('earned_at', sa.DateTime(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('person_id', 'achievement_type', 'level', name='uq_achievement_person_type_level'),
    )
    op.create_index('ix_achievement_workspace_id', 'achievement', ['workspace_id'])
    op.create_index('ix_achievement_person_id', 'achievement', ['person_id'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('achievement')
    op.drop_table('alert')
    op.drop_table('performance_metric')
    op.drop_table('standup_entry')
