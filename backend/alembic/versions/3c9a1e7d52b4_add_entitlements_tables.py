"""add_entitlements_tables

Revision ID: 3c9a1e7d52b4
Revises:
Create Date: 2026-10-17 09:12:44.318205

Subscription and usage reconciliation schema.

Tables:
- user_subscriptions: relational copy of each user's subscription (designated writer)
- user_profiles: dashboard document with the subscription replica, usage cache and history
- billing_events: provider event log, unique on the provider event ID
- payments: payment history, unique on the payment intent (idempotency key)
- usage_ledger: per-user monthly counters, one column per metered feature
- weekly_discovery_windows / discovery_search_runs: weekly AI discovery tracking
- ai_searches: AI job searches, source of truth for slot occupancy
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c9a1e7d52b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create entitlements tables with indexes and constraints."""

    op.create_table(
        'user_subscriptions',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),

        sa.Column('plan_tier', sa.String(50), nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('billing_cycle', sa.String(20), nullable=True),

        # Billing provider IDs (nullable until checkout)
        sa.Column('provider_customer_id', sa.String(255), nullable=True),
        sa.Column('provider_subscription_id', sa.String(255), nullable=True),

        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('trial_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provider_updated_at', sa.DateTime(timezone=True), nullable=True),

        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),

        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_subscriptions_user_id', 'user_subscriptions', ['user_id'], unique=True)
    op.create_index('ix_user_subscriptions_plan_tier', 'user_subscriptions', ['plan_tier'])
    op.create_index('ix_user_subscriptions_status', 'user_subscriptions', ['status'])
    op.create_index('ix_user_subscriptions_provider_customer_id', 'user_subscriptions', ['provider_customer_id'])
    op.create_index('idx_user_subscriptions_status_tier', 'user_subscriptions', ['status', 'plan_tier'])
    op.create_index('idx_user_subscriptions_period_end', 'user_subscriptions', ['current_period_end'])
    op.create_index('idx_user_subscriptions_provider_subscription_id', 'user_subscriptions', ['provider_subscription_id'], unique=True, postgresql_where=sa.text('provider_subscription_id IS NOT NULL'))

    op.create_table(
        'user_profiles',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('subscription', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('usage', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.Column('usage_history', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_profiles_user_id', 'user_profiles', ['user_id'], unique=True)

    op.create_table(
        'billing_events',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('event_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('outcome', sa.String(20), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('user_id', sa.String(255), nullable=True),
        sa.Column('raw_payload', postgresql.JSON(astext_type=sa.Text()), nullable=False, server_default='{}'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_billing_events_event_id', 'billing_events', ['event_id'], unique=True)
    op.create_index('ix_billing_events_event_type', 'billing_events', ['event_type'])
    op.create_index('ix_billing_events_user_id', 'billing_events', ['user_id'])
    op.create_index('idx_billing_events_processed_received', 'billing_events', ['processed', 'received_at'])

    op.create_table(
        'payments',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('provider_payment_intent_id', sa.String(255), nullable=False),
        sa.Column('provider_invoice_id', sa.String(255), nullable=True),
        sa.Column('provider_subscription_id', sa.String(255), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('billing_reason', sa.String(50), nullable=True),
        sa.Column('invoice_url', sa.String(1024), nullable=True),
        sa.Column('receipt_url', sa.String(1024), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider_payment_intent_id', name='uq_payments_payment_intent'),
    )
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_provider_invoice_id', 'payments', ['provider_invoice_id'])
    op.create_index('idx_payments_user_created', 'payments', ['user_id', 'created_at'])

    op.create_table(
        'usage_ledger',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('period', sa.Date(), nullable=False),

        # One counter per metered feature
        sa.Column('resume_uploads', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('resume_analysis', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('job_imports', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('resume_tailoring', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('recruiter_unlocks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ai_job_discovery', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ai_conversations', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ai_messages', sa.Integer(), nullable=False, server_default='0'),

        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'period', name='uq_usage_ledger_user_period'),
    )
    op.create_index('ix_usage_ledger_user_id', 'usage_ledger', ['user_id'])
    op.create_index('ix_usage_ledger_period', 'usage_ledger', ['period'])
    op.create_index('idx_usage_ledger_unarchived', 'usage_ledger', ['period'], postgresql_where=sa.text('archived_at IS NULL'))

    op.create_table(
        'weekly_discovery_windows',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('week_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('week_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('week_year', sa.Integer(), nullable=False),
        sa.Column('week_number', sa.Integer(), nullable=False),
        sa.Column('jobs_found_this_week', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'week_start', name='uq_discovery_user_week'),
    )
    op.create_index('ix_weekly_discovery_windows_user_id', 'weekly_discovery_windows', ['user_id'])

    op.create_table(
        'discovery_search_runs',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('window_id', sa.BigInteger(), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('search_id', sa.String(255), nullable=True),
        sa.Column('search_name', sa.String(255), nullable=True),
        sa.Column('resume_name', sa.String(255), nullable=True),
        sa.Column('run_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('jobs_found', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('search_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['window_id'], ['weekly_discovery_windows.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_discovery_search_runs_window_id', 'discovery_search_runs', ['window_id'])
    op.create_index('ix_discovery_search_runs_user_id', 'discovery_search_runs', ['user_id'])
    op.create_index('ix_discovery_search_runs_search_id', 'discovery_search_runs', ['search_id'])

    op.create_table(
        'ai_searches',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_ai_searches_user_id', 'ai_searches', ['user_id'])
    op.create_index('idx_ai_searches_user_status', 'ai_searches', ['user_id', 'status'])


def downgrade() -> None:
    """Remove entitlements tables."""
    op.drop_table('ai_searches')
    op.drop_table('discovery_search_runs')
    op.drop_table('weekly_discovery_windows')
    op.drop_table('usage_ledger')
    op.drop_table('payments')
    op.drop_table('billing_events')
    op.drop_table('user_profiles')
    op.drop_table('user_subscriptions')
