"""add tracking and feedback tables

Weight and meal tracking, per-set exercise logs, the check-in adjustments
journal, cancellation feedback and support tickets.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True)


def _user_fk(nullable: bool = False, ondelete: str = 'CASCADE'):
    return sa.Column(
        'user_id',
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey('profiles.id', ondelete=ondelete),
        nullable=nullable,
    )


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def _logged_at():
    return sa.Column('logged_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def upgrade() -> None:
    op.create_table(
        'exercise_logs',
        _id(),
        _user_fk(),
        sa.Column('session_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('exercise_name', sa.Text(), nullable=False),
        sa.Column('set_number', sa.Integer(), nullable=False),
        sa.Column('weight_used', sa.Float(), nullable=True),
        sa.Column('rpe_felt', sa.Integer(), nullable=True),
        sa.Column('comment', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_exercise_logs_user_id', 'exercise_logs', ['user_id'])
    op.create_index('ix_exercise_logs_session_id', 'exercise_logs', ['session_id'])

    op.create_table(
        'weight_logs',
        _id(),
        _user_fk(),
        sa.Column('weight', sa.Float(), nullable=False),
        sa.Column('waist_circumference', sa.Float(), nullable=True),
        _logged_at(),
        _created_at(),
    )
    op.create_index('ix_weight_logs_user_id', 'weight_logs', ['user_id'])
    op.create_index('ix_weight_logs_user_logged_at', 'weight_logs', ['user_id', 'logged_at'])

    op.create_table(
        'nutrition_logs',
        _id(),
        _user_fk(),
        sa.Column('meal_type', sa.Text(), nullable=False),
        sa.Column('food_description', sa.Text(), nullable=False),
        sa.Column('calories', sa.Integer(), nullable=False),
        sa.Column('protein', sa.Float(), nullable=True),
        sa.Column('carbs', sa.Float(), nullable=True),
        sa.Column('fats', sa.Float(), nullable=True),
        _logged_at(),
        _created_at(),
        sa.CheckConstraint(
            "meal_type IN ('breakfast', 'lunch', 'dinner', 'snack')",
            name='ck_nutrition_logs_meal_type',
        ),
    )
    op.create_index('ix_nutrition_logs_user_id', 'nutrition_logs', ['user_id'])
    op.create_index('ix_nutrition_logs_user_logged_at', 'nutrition_logs', ['user_id', 'logged_at'])

    op.create_table(
        'adjustments_log',
        _id(),
        _user_fk(),
        sa.Column('week_iso', sa.Text(), nullable=True),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_adjustments_log_user_id', 'adjustments_log', ['user_id'])
    op.create_index('ix_adjustments_log_created_at', 'adjustments_log', ['created_at'])

    op.create_table(
        'cancellation_feedback',
        _id(),
        _user_fk(nullable=True, ondelete='SET NULL'),
        sa.Column('action_type', sa.Text(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('additional_comments', sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "action_type IN ('cancel_subscription', 'delete_account')",
            name='ck_cancellation_feedback_action_type',
        ),
    )
    op.create_index('ix_cancellation_feedback_user_id', 'cancellation_feedback', ['user_id'])
    op.create_index('ix_cancellation_feedback_created_at', 'cancellation_feedback', ['created_at'])

    op.create_table(
        'support_tickets',
        _id(),
        _user_fk(nullable=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('subject', sa.Text(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), server_default='open', nullable=False),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "status IN ('open', 'in_progress', 'resolved', 'closed')",
            name='ck_support_tickets_status',
        ),
    )
    op.create_index('ix_support_tickets_user_id', 'support_tickets', ['user_id'])
    op.create_index('ix_support_tickets_status', 'support_tickets', ['status'])
    op.create_index('ix_support_tickets_created_at', 'support_tickets', ['created_at'])


def downgrade() -> None:
    for table in (
        'support_tickets',
        'cancellation_feedback',
        'adjustments_log',
        'nutrition_logs',
        'weight_logs',
        'exercise_logs',
    ):
        op.drop_table(table)
