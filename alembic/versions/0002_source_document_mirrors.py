"""source document mirror tables

Created only where the invoicing/bookkeeping services do not already own
them (standalone deployments and local development).

Revision ID: 0002_source_document_mirrors
Revises: 0001_tax_engine_initial
Create Date: 2025-11-20
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_source_document_mirrors'
down_revision = '0001_tax_engine_initial'
branch_labels = None
depends_on = None


def upgrade() -> None:
    if not _table_exists('workspaces'):
        op.create_table(
            'workspaces',
            sa.Column('id', sa.String(64), primary_key=True),
            sa.Column('name', sa.String(120), nullable=True),
            sa.Column('legal_entity_kind', sa.String(16), nullable=False, server_default='PERSONAL'),
        )

    if not _table_exists('source_invoices'):
        op.create_table(
            'source_invoices',
            sa.Column('id', sa.String(64), primary_key=True),
            sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
            sa.Column('number', sa.String(64), nullable=True),
            sa.Column('customer_name', sa.String(255), nullable=True),
            sa.Column('status', sa.String(16), nullable=False, server_default='DRAFT'),
            sa.Column('issued_at', sa.DateTime(), nullable=True, index=True),
            sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),
            sa.Column('net_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('tax_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('total_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('is_cross_border', sa.Boolean(), nullable=False, server_default=sa.false()),
        )

    if not _table_exists('invoice_payments'):
        op.create_table(
            'invoice_payments',
            sa.Column('id', sa.String(64), primary_key=True),
            sa.Column('invoice_id', sa.String(64), sa.ForeignKey('source_invoices.id'), nullable=False, index=True),
            sa.Column('amount_cents', sa.BigInteger(), nullable=False),
            sa.Column('paid_at', sa.DateTime(), nullable=False, index=True),
        )

    if not _table_exists('expenses'):
        op.create_table(
            'expenses',
            sa.Column('id', sa.String(64), primary_key=True),
            sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
            sa.Column('status', sa.String(16), nullable=False, server_default='DRAFT'),
            sa.Column('expense_date', sa.DateTime(), nullable=False, index=True),
            sa.Column('merchant_name', sa.String(255), nullable=True),
            sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),
            sa.Column('total_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('tax_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('archived_at', sa.DateTime(), nullable=True),
        )


def downgrade() -> None:
    for table in ('expenses', 'invoice_payments', 'source_invoices', 'workspaces'):
        if _table_exists(table):
            op.drop_table(table)


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    return table_name in inspector.get_table_names()
