"""Create customers, invoices, payments, credits and audit log tables

Revision ID: a3f1c9d27e40
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a3f1c9d27e40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns():
    return [
        sa.Column('created_on', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_on', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True, comment='Actor who created the record'),
        sa.Column('modified_by', sa.String(length=64), nullable=True, comment='Actor who last modified the record'),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    invoice_status_enum = sa.Enum('DRAFT', 'OPEN', 'PARTIAL', 'PAID', 'OVERDUE', 'CANCELLED', name='invoicestatus')
    payment_method_enum = sa.Enum('CASH', 'BANK_TRANSFER', 'CHEQUE', 'CARD', 'MOBILE_MONEY', name='paymentmethod')
    payment_status_enum = sa.Enum('COMPLETED', name='paymentstatus')
    credit_status_enum = sa.Enum('ACTIVE', 'EXHAUSTED', 'CANCELLED', name='creditstatus')
    credit_reason_enum = sa.Enum('OVERPAYMENT', name='creditreason')

    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('opening_balance', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0.00', comment='Signed baseline owed before tracked invoices/payments existed'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_customers_id'), 'customers', ['id'], unique=False)

    op.create_table('invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=50), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('invoice_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('balance', sa.Numeric(precision=12, scale=2), nullable=True, comment='Outstanding amount; NULL only for rows that predate balance tracking'),
        sa.Column('status', invoice_status_enum, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('balance >= 0', name='ck_invoices_balance_non_negative'),
        sa.CheckConstraint('balance <= total_amount', name='ck_invoices_balance_le_total'),
    )
    op.create_index(op.f('ix_invoices_id'), 'invoices', ['id'], unique=False)
    op.create_index(op.f('ix_invoices_invoice_number'), 'invoices', ['invoice_number'], unique=True)
    op.create_index(op.f('ix_invoices_customer_id'), 'invoices', ['customer_id'], unique=False)
    op.create_index(op.f('ix_invoices_invoice_date'), 'invoices', ['invoice_date'], unique=False)
    op.create_index(op.f('ix_invoices_status'), 'invoices', ['status'], unique=False)
    op.create_index('ix_invoices_customer_status', 'invoices', ['customer_id', 'status'], unique=False)

    op.create_table('customer_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_method', payment_method_enum, nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('reference_number', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', payment_status_enum, nullable=False),
        sa.Column('allocated_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0.00', comment='Portion of amount applied to invoices'),
        sa.Column('credit_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0.00', comment='Portion of amount converted into a customer credit'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('amount > 0', name='ck_customer_payments_amount_positive'),
    )
    op.create_index(op.f('ix_customer_payments_id'), 'customer_payments', ['id'], unique=False)
    op.create_index(op.f('ix_customer_payments_customer_id'), 'customer_payments', ['customer_id'], unique=False)
    op.create_index(op.f('ix_customer_payments_payment_date'), 'customer_payments', ['payment_date'], unique=False)

    op.create_table('payment_applications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_payment_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('amount_applied', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('balance_before', sa.Numeric(precision=12, scale=2), nullable=True, comment='Invoice balance before this application'),
        sa.Column('balance_after', sa.Numeric(precision=12, scale=2), nullable=True, comment='Invoice balance after this application'),
        sa.Column('notes', sa.String(length=255), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_payment_id'], ['customer_payments.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('amount_applied > 0', name='ck_payment_applications_amount_positive'),
    )
    op.create_index(op.f('ix_payment_applications_id'), 'payment_applications', ['id'], unique=False)
    op.create_index(op.f('ix_payment_applications_customer_payment_id'), 'payment_applications', ['customer_payment_id'], unique=False)
    op.create_index(op.f('ix_payment_applications_invoice_id'), 'payment_applications', ['invoice_id'], unique=False)

    op.create_table('credits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('source_payment_id', sa.Integer(), nullable=True, comment='Payment whose remainder created this credit'),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('available_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('reason', credit_reason_enum, nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('status', credit_status_enum, nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['source_payment_id'], ['customer_payments.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('source_payment_id'),
        sa.CheckConstraint('available_amount >= 0', name='ck_credits_available_non_negative'),
        sa.CheckConstraint('available_amount <= amount', name='ck_credits_available_le_amount'),
    )
    op.create_index(op.f('ix_credits_id'), 'credits', ['id'], unique=False)
    op.create_index(op.f('ix_credits_customer_id'), 'credits', ['customer_id'], unique=False)
    op.create_index(op.f('ix_credits_status'), 'credits', ['status'], unique=False)

    op.create_table('credit_applications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('credit_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('amount_applied', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('applied_date', sa.Date(), nullable=False),
        sa.Column('applied_by', sa.String(length=64), nullable=False),
        sa.Column('notes', sa.String(length=255), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['credit_id'], ['credits.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('amount_applied > 0', name='ck_credit_applications_amount_positive'),
    )
    op.create_index(op.f('ix_credit_applications_id'), 'credit_applications', ['id'], unique=False)
    op.create_index(op.f('ix_credit_applications_credit_id'), 'credit_applications', ['credit_id'], unique=False)
    op.create_index(op.f('ix_credit_applications_invoice_id'), 'credit_applications', ['invoice_id'], unique=False)
    op.create_index(op.f('ix_credit_applications_applied_date'), 'credit_applications', ['applied_date'], unique=False)

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('before_snapshot', sa.JSON(), nullable=True),
        sa.Column('after_snapshot', sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_audit_logs_id'), 'audit_logs', ['id'], unique=False)
    op.create_index(op.f('ix_audit_logs_actor_id'), 'audit_logs', ['actor_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_entity_type'), 'audit_logs', ['entity_type'], unique=False)
    op.create_index(op.f('ix_audit_logs_entity_id'), 'audit_logs', ['entity_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('audit_logs')
    op.drop_table('credit_applications')
    op.drop_table('credits')
    op.drop_table('payment_applications')
    op.drop_table('customer_payments')
    op.drop_table('invoices')
    op.drop_table('customers')

    bind = op.get_bind()
    for enum_name in ('creditreason', 'creditstatus', 'paymentstatus', 'paymentmethod', 'invoicestatus'):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
