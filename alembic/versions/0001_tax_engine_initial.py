"""tax engine tables

Revision ID: 0001_tax_engine_initial
Revises:
Create Date: 2025-11-20
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_tax_engine_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    if not _table_exists('tax_profiles'):
        op.create_table(
            'tax_profiles',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('tenant_id', sa.String(64), nullable=False),
            sa.Column('country', sa.String(2), nullable=False, server_default='DE'),
            sa.Column('regime', sa.String(20), nullable=False, server_default='STANDARD_VAT'),
            sa.Column('vat_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('vat_id', sa.String(32), nullable=True),
            sa.Column('vat_accounting_method', sa.String(8), nullable=False, server_default='SOLL'),
            sa.Column('filing_frequency', sa.String(16), nullable=False, server_default='QUARTERLY'),
            sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),
            sa.Column('tax_year_start_month', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('local_tax_office_name', sa.String(120), nullable=True),
            sa.Column('has_cross_border_sales', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('has_employees', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('uses_tax_advisor', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('effective_from', sa.DateTime(), nullable=False),
            sa.Column('effective_to', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        )
        op.create_index('ix_tax_profiles_tenant_window', 'tax_profiles', ['tenant_id', 'effective_from'])

    if not _table_exists('tax_reports'):
        op.create_table(
            'tax_reports',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('tenant_id', sa.String(64), nullable=False),
            sa.Column('type', sa.String(32), nullable=False),
            sa.Column('group', sa.String(32), nullable=False, server_default='COMPLIANCE'),
            sa.Column('status', sa.String(16), nullable=False, server_default='UPCOMING'),
            sa.Column('period_label', sa.String(32), nullable=False),
            sa.Column('period_start', sa.DateTime(), nullable=False),
            sa.Column('period_end', sa.DateTime(), nullable=False),
            sa.Column('due_date', sa.DateTime(), nullable=False),
            sa.Column('amount_estimated_cents', sa.BigInteger(), nullable=True),
            sa.Column('amount_final_cents', sa.BigInteger(), nullable=True),
            sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),
            sa.Column('submitted_at', sa.DateTime(), nullable=True),
            sa.Column('submission_reference', sa.String(120), nullable=True),
            sa.Column('submission_notes', sa.Text(), nullable=True),
            sa.Column('archived_reason', sa.Text(), nullable=True),
            sa.Column('pdf_storage_key', sa.String(255), nullable=True),
            sa.Column('pdf_generated_at', sa.DateTime(), nullable=True),
            sa.Column('meta', sa.JSON(), nullable=False),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
            sa.UniqueConstraint('tenant_id', 'type', 'period_start', 'period_end', name='uq_tax_report_period'),
        )
        op.create_index('ix_tax_reports_tenant_status_due', 'tax_reports', ['tenant_id', 'status', 'due_date'])

    if not _table_exists('tax_report_lines'):
        op.create_table(
            'tax_report_lines',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column(
                'report_id',
                sa.Integer(),
                sa.ForeignKey('tax_reports.id', ondelete='CASCADE'),
                nullable=False,
                index=True,
            ),
            sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('section', sa.String(32), nullable=False),
            sa.Column('label', sa.String(255), nullable=False),
            sa.Column('net_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
            sa.Column('tax_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        )

    if not _table_exists('tax_snapshots'):
        op.create_table(
            'tax_snapshots',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
            sa.Column('source_type', sa.String(16), nullable=False),
            sa.Column('source_id', sa.String(64), nullable=False),
            sa.Column('jurisdiction', sa.String(2), nullable=False),
            sa.Column('regime', sa.String(20), nullable=True),
            sa.Column('rounding_mode', sa.String(16), nullable=False, server_default='PER_LINE'),
            sa.Column('currency', sa.String(3), nullable=False, server_default='EUR'),
            sa.Column('calculated_at', sa.DateTime(), nullable=False),
            sa.Column('subtotal_amount_cents', sa.BigInteger(), nullable=False),
            sa.Column('tax_total_amount_cents', sa.BigInteger(), nullable=False),
            sa.Column('total_amount_cents', sa.BigInteger(), nullable=False),
            sa.Column('breakdown_json', sa.Text(), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
            sa.UniqueConstraint('tenant_id', 'source_type', 'source_id', name='uq_tax_snapshot_source'),
        )


def downgrade() -> None:
    for table in ('tax_snapshots', 'tax_report_lines', 'tax_reports', 'tax_profiles'):
        if _table_exists(table):
            op.drop_table(table)


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    return table_name in inspector.get_table_names()
