"""Add batch metadata, market batch sizing and stop coordinates

Revision ID: 002_add_batch_metadata
Revises: 001_initial_marketplace_schema
Create Date: 2026-04-14 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_add_batch_metadata'
down_revision = '001_initial_marketplace_schema'
branch_labels = None
depends_on = None


def upgrade():
    """
    Batch optimization groups orders by collection point and records how
    each batch was planned (AI or geographic fallback) in batch_metadata.
    Market configs gain the batch sizing limits used by the planner.
    """
    op.create_table(
        'batch_metadata',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('delivery_batch_id', sa.String(length=36), nullable=False),
        sa.Column('collection_point_id', sa.String(length=36), nullable=True),
        sa.Column('collection_point_address', sa.String(length=500), nullable=True),
        sa.Column('original_zip_codes', sa.JSON(), nullable=True),
        sa.Column('merged_zips', sa.JSON(), nullable=True),
        sa.Column('order_count', sa.Integer(), nullable=False),
        sa.Column('is_subsidized', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('ai_optimization_data', sa.JSON(), nullable=True),
        sa.Column('estimated_route_hours', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['delivery_batch_id'], ['delivery_batches.id']),
        sa.ForeignKeyConstraint(['collection_point_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
    )

    with op.batch_alter_table('market_configs', schema=None) as batch_op:
        batch_op.add_column(sa.Column('target_batch_size', sa.Integer(), nullable=True, server_default='37'))
        batch_op.add_column(sa.Column('min_batch_size', sa.Integer(), nullable=True, server_default='30'))
        batch_op.add_column(sa.Column('max_batch_size', sa.Integer(), nullable=True, server_default='45'))
        batch_op.add_column(sa.Column('max_route_hours', sa.Float(), nullable=True, server_default='7.5'))

    with op.batch_alter_table('batch_stops', schema=None) as batch_op:
        batch_op.add_column(sa.Column('latitude', sa.Float(), nullable=True))
        batch_op.add_column(sa.Column('longitude', sa.Float(), nullable=True))


def downgrade():
    with op.batch_alter_table('batch_stops', schema=None) as batch_op:
        batch_op.drop_column('longitude')
        batch_op.drop_column('latitude')

    with op.batch_alter_table('market_configs', schema=None) as batch_op:
        batch_op.drop_column('max_route_hours')
        batch_op.drop_column('max_batch_size')
        batch_op.drop_column('min_batch_size')
        batch_op.drop_column('target_batch_size')

    op.drop_table('batch_metadata')
