"""Add Stripe webhook event log and dispute review flags

Revision ID: 003_add_stripe_webhook_events
Revises: 002_add_batch_metadata
Create Date: 2026-05-21 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '003_add_stripe_webhook_events'
down_revision = '002_add_batch_metadata'
branch_labels = None
depends_on = None


def upgrade():
    """
    stripe_webhook_events makes webhook processing idempotent: the unique
    stripe_event_id means a redelivered event is recorded once.
    """
    op.create_table(
        'stripe_webhook_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('stripe_webhook_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stripe_webhook_events_stripe_event_id'),
                              ['stripe_event_id'], unique=True)

    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.add_column(sa.Column('flagged_for_review', sa.Boolean(), nullable=False, server_default=sa.false()))

    with op.batch_alter_table('payouts', schema=None) as batch_op:
        batch_op.add_column(sa.Column('stripe_payout_id', sa.String(length=64), nullable=True))


def downgrade():
    with op.batch_alter_table('payouts', schema=None) as batch_op:
        batch_op.drop_column('stripe_payout_id')

    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.drop_column('flagged_for_review')

    op.drop_table('stripe_webhook_events')
