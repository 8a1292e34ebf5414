"""Create payment, webhook event and reference data tables.

Revision ID: create_payment_tables
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 'create_payment_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'currencies',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(10), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    
    op.create_table(
        'payment_providers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(50), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    
    op.create_table(
        'payment_methods',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(50), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('payment_provider_id', sa.Integer(),
                  sa.ForeignKey('payment_providers.id', ondelete='RESTRICT'),
                  nullable=False, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('reference_id', sa.String(64), nullable=False),
        sa.Column('customer_phone', sa.String(32), nullable=False),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='INITIATED'),
        sa.Column('currency_id', sa.Integer(),
                  sa.ForeignKey('currencies.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('payment_method_id', sa.Integer(),
                  sa.ForeignKey('payment_methods.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('provider_transaction_id', sa.String(255), nullable=True),
        sa.Column('provider_name', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('amount > 0', name='ck_payments_amount_positive'),
        sa.CheckConstraint(
            "status IN ('INITIATED', 'PENDING', 'SUCCESS', 'FAILED')",
            name='ck_payments_status',
        ),
    )
    op.create_index('ix_payments_reference_id', 'payments', ['reference_id'], unique=True)
    op.create_index('ix_payments_status', 'payments', ['status'])
    
    # Reconciliation sweeps scan non-terminal payments by age
    op.create_index(
        'ix_payments_open_updated_at',
        'payments',
        ['status', 'updated_at'],
        postgresql_where=sa.text("status IN ('INITIATED', 'PENDING')"),
    )
    
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('payment_reference_id', sa.String(64),
                  sa.ForeignKey('payments.reference_id', ondelete='RESTRICT'),
                  nullable=False, unique=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('provider_transaction_id', sa.String(255), nullable=False, unique=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('webhook_events')
    op.drop_index('ix_payments_open_updated_at', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_reference_id', table_name='payments')
    op.drop_table('payments')
    op.drop_table('payment_methods')
    op.drop_table('payment_providers')
    op.drop_table('currencies')
