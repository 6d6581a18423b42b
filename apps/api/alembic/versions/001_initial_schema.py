"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True)


def _user_fk(unique: bool = False):
    return sa.Column(
        'user_id',
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey('profiles.id', ondelete='CASCADE'),
        nullable=False,
        unique=unique,
    )


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def upgrade() -> None:
    op.create_table(
        'profiles',
        _id(),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('password_hash', sa.Text(), nullable=True),
        sa.Column('is_disabled', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('onboarding_completed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'], unique=True)
    op.create_index('ix_profiles_last_activity_at', 'profiles', ['last_activity_at'])
    op.create_index('ix_profiles_created_at', 'profiles', ['created_at'])

    op.create_table(
        'user_roles',
        _id(),
        _user_fk(),
        sa.Column('role', sa.Text(), nullable=False),
        _created_at(),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
        sa.CheckConstraint("role IN ('admin', 'member')", name='ck_user_roles_role'),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])

    op.create_table(
        'goals',
        _id(),
        _user_fk(unique=True),
        sa.Column('goal_type', sa.Text(), nullable=True),
        sa.Column('horizon', sa.Text(), nullable=True),
        sa.Column('target_weight_loss', sa.Float(), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('sex', sa.Text(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('weight', sa.Float(), nullable=True),
        sa.Column('activity_level', sa.Text(), nullable=True),
        sa.Column('frequency', sa.Integer(), nullable=True),
        sa.Column('session_duration', sa.Integer(), nullable=True),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('equipment', postgresql.JSONB(), nullable=True),
        sa.Column('has_cardio', sa.Boolean(), nullable=True),
        sa.Column('cardio_frequency', sa.Integer(), nullable=True),
        sa.Column('meals_per_day', sa.Integer(), nullable=True),
        sa.Column('has_breakfast', sa.Boolean(), nullable=True),
        sa.Column('restrictions', postgresql.JSONB(), nullable=True),
        sa.Column('allergies', postgresql.JSONB(), nullable=True),
        sa.Column('health_conditions', postgresql.JSONB(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_goals_user_id', 'goals', ['user_id'], unique=True)

    op.create_table(
        'training_preferences',
        _id(),
        _user_fk(unique=True),
        sa.Column('experience_level', sa.Text(), nullable=True),
        sa.Column('session_type', sa.Text(), nullable=True),
        sa.Column('split_preference', sa.Text(), nullable=True),
        sa.Column('progression_focus', sa.Text(), nullable=True),
        sa.Column('mobility_preference', sa.Text(), nullable=True),
        sa.Column('cardio_intensity', sa.Text(), nullable=True),
        sa.Column('priority_zones', postgresql.JSONB(), nullable=True),
        sa.Column('limitations', postgresql.JSONB(), nullable=True),
        sa.Column('favorite_exercises', sa.Text(), nullable=True),
        sa.Column('exercises_to_avoid', sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_training_preferences_user_id', 'training_preferences', ['user_id'], unique=True)

    op.create_table(
        'sessions',
        _id(),
        _user_fk(),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('exercises', postgresql.JSONB(), nullable=False),
        sa.Column('completed', sa.Boolean(), server_default=sa.false(), nullable=False),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])
    op.create_index('ix_sessions_session_date', 'sessions', ['session_date'])
    op.create_index('ix_sessions_user_date', 'sessions', ['user_id', 'session_date'])

    op.create_table(
        'feedback',
        _id(),
        _user_fk(),
        sa.Column('session_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('sessions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('rpe', sa.Integer(), nullable=True),
        sa.Column('completed', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('had_pain', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('pain_zones', postgresql.JSONB(), nullable=True),
        sa.Column('comments', sa.Text(), nullable=True),
        _created_at(),
        sa.CheckConstraint('rpe IS NULL OR (rpe >= 1 AND rpe <= 10)', name='ck_feedback_rpe_range'),
    )
    op.create_index('ix_feedback_user_id', 'feedback', ['user_id'])
    op.create_index('ix_feedback_session_id', 'feedback', ['session_id'])

    op.create_table(
        'weekly_checkins',
        _id(),
        _user_fk(),
        sa.Column('week_iso', sa.Text(), nullable=False),
        sa.Column('average_weight', sa.Float(), nullable=True),
        sa.Column('waist_circumference', sa.Float(), nullable=True),
        sa.Column('adherence_diet', sa.Integer(), nullable=True),
        sa.Column('rpe_avg', sa.Float(), nullable=True),
        sa.Column('energy', sa.Text(), nullable=True),
        sa.Column('sleep', sa.Text(), nullable=True),
        sa.Column('hunger', sa.Text(), nullable=True),
        sa.Column('pain_zones', postgresql.JSONB(), nullable=True),
        sa.Column('pain_intensity', sa.Integer(), nullable=True),
        sa.Column('sessions_done', sa.Integer(), nullable=True),
        sa.Column('sessions_planned', sa.Integer(), nullable=True),
        sa.Column('blockers', sa.Text(), nullable=True),
        sa.Column('recommendation', postgresql.JSONB(), nullable=True),
        _created_at(),
        sa.UniqueConstraint('user_id', 'week_iso', name='uq_weekly_checkins_user_week'),
    )
    op.create_index('ix_weekly_checkins_user_id', 'weekly_checkins', ['user_id'])
    op.create_index('ix_weekly_checkins_created_at', 'weekly_checkins', ['created_at'])

    op.create_table(
        'weekly_programs',
        _id(),
        _user_fk(),
        sa.Column('week_start_date', sa.Date(), nullable=False),
        sa.Column('week_end_date', sa.Date(), nullable=False),
        sa.Column('check_in_completed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('user_id', 'week_start_date', name='uq_weekly_programs_user_week'),
    )
    op.create_index('ix_weekly_programs_user_id', 'weekly_programs', ['user_id'])

    op.create_table(
        'conversations',
        _id(),
        _user_fk(),
        sa.Column('coach_type', sa.Text(), nullable=False),
        sa.Column('title', sa.Text(), server_default='Nouvelle conversation', nullable=False),
        sa.Column('is_archived', sa.Boolean(), server_default=sa.false(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.CheckConstraint("coach_type IN ('alex', 'julie')", name='ck_conversations_coach_type'),
    )
    op.create_index('ix_conversations_user_id', 'conversations', ['user_id'])
    op.create_index('ix_conversations_updated_at', 'conversations', ['updated_at'])

    op.create_table(
        'chat_messages',
        _id(),
        sa.Column(
            'conversation_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('conversations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        _user_fk(),
        sa.Column('role', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        _created_at(),
        sa.CheckConstraint("role IN ('user', 'assistant')", name='ck_chat_messages_role'),
    )
    op.create_index('ix_chat_messages_conversation_id', 'chat_messages', ['conversation_id'])
    op.create_index('ix_chat_messages_user_id', 'chat_messages', ['user_id'])

    op.create_table(
        'subscriptions',
        _id(),
        _user_fk(unique=True),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True),
        sa.Column('stripe_subscription_id', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('plan_type', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index('ix_subscriptions_user_id', 'subscriptions', ['user_id'], unique=True)
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index('ix_subscriptions_stripe_subscription_id', 'subscriptions', ['stripe_subscription_id'])
    op.create_index('ix_subscriptions_status', 'subscriptions', ['status'])

    op.create_table(
        'stripe_events',
        sa.Column('event_id', sa.Text(), primary_key=True),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('stripe_created', sa.Integer(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_stripe_events_event_type', 'stripe_events', ['event_type'])

    # No FK on the user columns: audit rows outlive deleted accounts.
    op.create_table(
        'admin_audit_log',
        _id(),
        sa.Column('admin_user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('target_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('details', postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        _created_at(),
    )
    op.create_index('ix_admin_audit_log_admin_user_id', 'admin_audit_log', ['admin_user_id'])
    op.create_index('ix_admin_audit_log_target_user_id', 'admin_audit_log', ['target_user_id'])
    op.create_index('ix_admin_audit_log_action', 'admin_audit_log', ['action'])
    op.create_index('ix_admin_audit_log_created_at', 'admin_audit_log', ['created_at'])

    op.create_table(
        'exercise_image_cache',
        _id(),
        sa.Column('exercise_name', sa.Text(), nullable=False),
        sa.Column('exercise_name_normalized', sa.Text(), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('gif_url', sa.Text(), nullable=True),
        sa.Column('source', sa.Text(), server_default='exercisedb', nullable=False),
        _created_at(),
    )
    op.create_index(
        'ix_exercise_image_cache_exercise_name_normalized',
        'exercise_image_cache',
        ['exercise_name_normalized'],
        unique=True,
    )

    op.create_table(
        'public_stats_cache',
        sa.Column('id', sa.Text(), primary_key=True),
        sa.Column('total_users', sa.Integer(), server_default='0', nullable=False),
        sa.Column('completed_sessions', sa.Integer(), server_default='0', nullable=False),
        sa.Column('average_rating', sa.Float(), nullable=True),
        sa.Column('avg_weight_loss', sa.Float(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )

    op.create_table(
        'email_queue',
        _id(),
        _user_fk(),
        sa.Column('email_type', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), server_default='pending', nullable=False),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index('ix_email_queue_user_id', 'email_queue', ['user_id'])
    op.create_index('ix_email_queue_status', 'email_queue', ['status'])
    op.create_index('ix_email_queue_scheduled_at', 'email_queue', ['scheduled_at'])


def downgrade() -> None:
    for table in (
        'email_queue',
        'public_stats_cache',
        'exercise_image_cache',
        'admin_audit_log',
        'stripe_events',
        'subscriptions',
        'chat_messages',
        'conversations',
        'weekly_programs',
        'weekly_checkins',
        'feedback',
        'sessions',
        'training_preferences',
        'goals',
        'user_roles',
        'profiles',
    ):
        op.drop_table(table)
