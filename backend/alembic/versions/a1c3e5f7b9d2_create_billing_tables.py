"""create billing tables

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-17 09:12:44.318206

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c3e5f7b9d2'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        'subscription_plans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('interval', sa.String(length=20), nullable=False),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('stripe_product_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_price_id', sa.String(length=255), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('plan_tier', sa.String(length=50), nullable=True),
        sa.Column('max_call_minutes', sa.Integer(), nullable=True),
        sa.Column('overage_rate_per_minute', sa.Numeric(10, 4), nullable=True),
        sa.Column('max_staff', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'businesses',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(length=255), nullable=True),
        sa.Column('subscription_plan_id', sa.Integer(), nullable=True),
        sa.Column('subscription_status', sa.String(length=32), nullable=False, server_default='none'),
        sa.Column('subscription_start_date', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('trial_ends_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('billing_event_at', sa.DateTime(), nullable=True),
        sa.Column('billing_version', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['subscription_plan_id'],
            ['subscription_plans.id'],
            ondelete='RESTRICT'
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_customer_id'),
        sa.UniqueConstraint('stripe_subscription_id')
    )

    op.create_table(
        'overage_charges',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('minutes_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('minutes_included', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('overage_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('overage_rate', sa.Numeric(10, 4), nullable=False, server_default='0'),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('stripe_invoice_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_invoice_url', sa.String(length=1024), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('failure_reason', sa.String(length=1024), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('plan_name', sa.String(length=100), nullable=True),
        sa.Column('plan_tier', sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_invoice_id'),
        sa.UniqueConstraint('business_id', 'period_start', name='uq_overage_business_period')
    )
    op.create_index('idx_overage_charges_business', 'overage_charges', ['business_id'], unique=False)

    op.create_table(
        'billing_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('outcome', sa.String(length=20), nullable=False),
        sa.Column('event_created_at', sa.DateTime(), nullable=True),
        sa.Column('event_data', sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_event_id')
    )
    op.create_index('idx_billing_events_business', 'billing_events', ['business_id'], unique=False)
    op.create_index('idx_billing_events_type', 'billing_events', ['event_type'], unique=False)

    op.create_table(
        'call_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('business_id', sa.Integer(), nullable=False),
        sa.Column('call_time', sa.DateTime(), nullable=False),
        sa.Column('call_duration', sa.Integer(), nullable=True),
        sa.Column('caller_id', sa.String(length=50), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'idx_call_logs_business_time', 'call_logs', ['business_id', 'call_time'], unique=False
    )


def downgrade():
    op.drop_index('idx_call_logs_business_time', table_name='call_logs')
    op.drop_table('call_logs')

    op.drop_index('idx_billing_events_type', table_name='billing_events')
    op.drop_index('idx_billing_events_business', table_name='billing_events')
    op.drop_table('billing_events')

    op.drop_index('idx_overage_charges_business', table_name='overage_charges')
    op.drop_table('overage_charges')

    op.drop_table('businesses')
    op.drop_table('subscription_plans')
