"""Add admin invitations, payee tax info and payment failure messages

Revision ID: 004_add_admin_invitations_and_tax_info
Revises: 003_add_stripe_webhook_events
Create Date: 2026-07-08 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '004_add_admin_invitations_and_tax_info'
down_revision = '003_add_stripe_webhook_events'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'admin_invitations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('invitation_token', sa.String(length=64), nullable=False),
        sa.Column('invited_by', sa.String(length=36), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['invited_by'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invitation_token'),
    )
    with op.batch_alter_table('admin_invitations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_admin_invitations_email'), ['email'], unique=False)

    # tax_id_encrypted holds base64(salt || iv || ciphertext || tag), never plaintext
    with op.batch_alter_table('profiles', schema=None) as batch_op:
        batch_op.add_column(sa.Column('tax_id_encrypted', sa.Text(), nullable=True))
        batch_op.add_column(sa.Column('tax_id_type', sa.String(length=3), nullable=True))
        batch_op.add_column(sa.Column('tax_name', sa.String(length=200), nullable=True))
        batch_op.add_column(sa.Column('tax_address', sa.String(length=500), nullable=True))
        batch_op.add_column(sa.Column('w9_submitted_at', sa.DateTime(), nullable=True))

    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.add_column(sa.Column('payment_failure_message', sa.String(length=500), nullable=True))


def downgrade():
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.drop_column('payment_failure_message')

    with op.batch_alter_table('profiles', schema=None) as batch_op:
        batch_op.drop_column('w9_submitted_at')
        batch_op.drop_column('tax_address')
        batch_op.drop_column('tax_name')
        batch_op.drop_column('tax_id_type')
        batch_op.drop_column('tax_id_encrypted')

    op.drop_table('admin_invitations')
