"""Initial marketplace schema

Revision ID: 001_initial_marketplace_schema
Revises:
Create Date: 2026-03-02 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_marketplace_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade():
    """
    Creates users and roles, catalog, carts, orders, delivery batches,
    the credit ledger, subscriptions, payouts, disputes and admin tables.
    """
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=True),
        sa.Column('phone', sa.String(length=40), nullable=True),
        sa.Column('street_address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=120), nullable=True),
        sa.Column('state', sa.String(length=2), nullable=True),
        sa.Column('zip_code', sa.String(length=10), nullable=True),
        sa.Column('collection_point_address', sa.String(length=500), nullable=True),
        sa.Column('collection_point_lead_farmer_id', sa.String(length=36), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=64), nullable=True),
        sa.Column('stripe_connect_account_id', sa.String(length=64), nullable=True),
        sa.Column('stripe_onboarding_complete', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stripe_charges_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stripe_payouts_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['collection_point_lead_farmer_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('profiles', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_profiles_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_profiles_zip_code'), ['zip_code'], unique=False)

    op.create_table(
        'user_roles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )
    with op.batch_alter_table('user_roles', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_user_roles_user_id'), ['user_id'], unique=False)

    op.create_table(
        'farm_profiles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('farmer_id', sa.String(length=36), nullable=False),
        sa.Column('farm_name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('bio', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['farmer_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('farm_profiles', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_farm_profiles_farmer_id'), ['farmer_id'], unique=False)

    op.create_table(
        'farm_affiliations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('lead_farmer_id', sa.String(length=36), nullable=False),
        sa.Column('farm_profile_id', sa.String(length=36), nullable=False),
        sa.Column('commission_rate', sa.Float(), nullable=False, server_default='5.0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['lead_farmer_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['farm_profile_id'], ['farm_profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lead_farmer_id', 'farm_profile_id', name='uq_farm_affiliation'),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('farm_profile_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('unit', sa.String(length=40), nullable=False),
        sa.Column('image_url', sa.String(length=500), nullable=True),
        sa.Column('available_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('harvest_date', sa.Date(), nullable=True),
        sa.Column('approved', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('approved_by', sa.String(length=36), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('last_reviewed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['farm_profile_id'], ['farm_profiles.id']),
        sa.ForeignKeyConstraint(['approved_by'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_farm_profile_id'), ['farm_profile_id'], unique=False)

    op.create_table(
        'shopping_carts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('consumer_id', sa.String(length=36), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['consumer_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('consumer_id'),
    )

    op.create_table(
        'cart_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('cart_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['cart_id'], ['shopping_carts.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cart_id', 'product_id', name='uq_cart_item_product'),
    )
    with op.batch_alter_table('cart_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cart_items_cart_id'), ['cart_id'], unique=False)

    op.create_table(
        'saved_carts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('consumer_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('items', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['consumer_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('saved_carts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_saved_carts_consumer_id'), ['consumer_id'], unique=False)

    op.create_table(
        'market_configs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('zip_code', sa.String(length=10), nullable=False),
        sa.Column('delivery_fee', sa.Float(), nullable=False, server_default='7.5'),
        sa.Column('minimum_order', sa.Float(), nullable=False, server_default='0'),
        sa.Column('delivery_days', sa.JSON(), nullable=False),
        sa.Column('cutoff_time', sa.String(length=5), nullable=False, server_default='23:59'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('collection_point_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['collection_point_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('market_configs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_market_configs_zip_code'), ['zip_code'], unique=False)

    op.create_table(
        'delivery_batches',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('lead_farmer_id', sa.String(length=36), nullable=True),
        sa.Column('driver_id', sa.String(length=36), nullable=True),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('batch_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('zip_codes', sa.JSON(), nullable=False),
        sa.Column('estimated_duration_minutes', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['lead_farmer_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['driver_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('delivery_batches', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_delivery_batches_delivery_date'), ['delivery_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_delivery_batches_driver_id'), ['driver_id'], unique=False)

    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('consumer_id', sa.String(length=36), nullable=False),
        sa.Column('delivery_date', sa.Date(), nullable=False),
        sa.Column('delivery_batch_id', sa.String(length=36), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=False, server_default='0'),
        sa.Column('delivery_fee', sa.Float(), nullable=False, server_default='0'),
        sa.Column('tip_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('platform_fee', sa.Float(), nullable=False, server_default='0'),
        sa.Column('credits_used', sa.Float(), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('box_code', sa.String(length=20), nullable=True),
        sa.Column('credits_awarded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['consumer_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['delivery_batch_id'], ['delivery_batches.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_consumer_id'), ['consumer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_delivery_date'), ['delivery_date'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_delivery_batch_id'), ['delivery_batch_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('product_id', sa.String(length=36), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Float(), nullable=False),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_items_order_id'), ['order_id'], unique=False)

    op.create_table(
        'batch_stops',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('delivery_batch_id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=False),
        sa.Column('sequence_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('estimated_arrival', sa.DateTime(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['delivery_batch_id'], ['delivery_batches.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('batch_stops', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_batch_stops_delivery_batch_id'), ['delivery_batch_id'], unique=False)

    op.create_table(
        'delivery_ratings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('driver_id', sa.String(length=36), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['driver_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id'),
    )
    with op.batch_alter_table('delivery_ratings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_delivery_ratings_driver_id'), ['driver_id'], unique=False)

    op.create_table(
        'credits_ledger',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('consumer_id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=True),
        sa.Column('transaction_type', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('balance_after', sa.Float(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('expired', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['consumer_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('credits_ledger', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_credits_ledger_consumer_id'), ['consumer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_credits_ledger_created_at'), ['created_at'], unique=False)

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('consumer_id', sa.String(length=36), nullable=False),
        sa.Column('stripe_subscription_id', sa.String(length=64), nullable=True),
        sa.Column('stripe_customer_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('current_period_start', sa.DateTime(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(), nullable=True),
        sa.Column('trial_end', sa.DateTime(), nullable=True),
        sa.Column('monthly_spend', sa.Float(), nullable=False, server_default='0'),
        sa.Column('monthly_spend_period', sa.String(length=7), nullable=True),
        sa.Column('credits_earned', sa.Float(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['consumer_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('consumer_id'),
    )
    with op.batch_alter_table('subscriptions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_subscriptions_stripe_subscription_id'),
                              ['stripe_subscription_id'], unique=False)

    op.create_table(
        'payouts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=True),
        sa.Column('recipient_id', sa.String(length=36), nullable=True),
        sa.Column('recipient_type', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('stripe_transfer_id', sa.String(length=64), nullable=True),
        sa.Column('error_message', sa.String(length=500), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['recipient_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('payouts', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payouts_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payouts_recipient_id'), ['recipient_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payouts_status'), ['status'], unique=False)

    op.create_table(
        'payment_intents',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=True),
        sa.Column('consumer_id', sa.String(length=36), nullable=False),
        sa.Column('stripe_payment_intent_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('status', sa.String(length=40), nullable=False),
        sa.Column('client_secret', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['consumer_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_payment_intent_id'),
    )
    with op.batch_alter_table('payment_intents', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_intents_order_id'), ['order_id'], unique=False)

    op.create_table(
        'disputes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False),
        sa.Column('consumer_id', sa.String(length=36), nullable=False),
        sa.Column('dispute_type', sa.String(length=30), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='open'),
        sa.Column('resolution', sa.Text(), nullable=True),
        sa.Column('refund_amount', sa.Float(), nullable=True),
        sa.Column('stripe_dispute_id', sa.String(length=64), nullable=True),
        sa.Column('resolved_by', sa.String(length=36), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['consumer_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['resolved_by'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('disputes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_disputes_order_id'), ['order_id'], unique=False)

    op.create_table(
        'rate_limits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('rate_limits', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_rate_limits_key'), ['key'], unique=False)
        batch_op.create_index(batch_op.f('ix_rate_limits_created_at'), ['created_at'], unique=False)

    op.create_table(
        'admin_audit_log',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('admin_id', sa.String(length=36), nullable=False),
        sa.Column('action_type', sa.String(length=64), nullable=False),
        sa.Column('target_resource_type', sa.String(length=64), nullable=True),
        sa.Column('target_resource_id', sa.String(length=64), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['admin_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('admin_audit_log', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_admin_audit_log_admin_id'), ['admin_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_admin_audit_log_created_at'), ['created_at'], unique=False)


def downgrade():
    for table in (
        'admin_audit_log', 'rate_limits', 'disputes', 'payment_intents', 'payouts',
        'subscriptions', 'credits_ledger', 'delivery_ratings', 'batch_stops', 'order_items',
        'orders', 'delivery_batches', 'market_configs', 'saved_carts', 'cart_items',
        'shopping_carts', 'products', 'farm_affiliations', 'farm_profiles', 'user_roles',
        'profiles',
    ):
        op.drop_table(table)
