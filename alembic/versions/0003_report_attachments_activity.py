"""tax report attachments and activity history

Revision ID: 0003_report_attachments_activity
Revises: 0002_source_document_mirrors
Create Date: 2025-12-02
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0003_report_attachments_activity'
down_revision = '0002_source_document_mirrors'
branch_labels = None
depends_on = None


def upgrade() -> None:
    if not _table_exists('tax_report_attachments'):
        op.create_table(
            'tax_report_attachments',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column(
                'report_id',
                sa.Integer(),
                sa.ForeignKey('tax_reports.id', ondelete='CASCADE'),
                nullable=False,
                index=True,
            ),
            sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
            sa.Column('document_id', sa.String(64), nullable=False),
            sa.Column('file_name', sa.String(255), nullable=True),
            sa.Column('content_type', sa.String(100), nullable=True),
            sa.Column('storage_key', sa.String(255), nullable=True),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
            sa.UniqueConstraint('report_id', 'document_id', name='uq_tax_report_attachment'),
        )

    if not _table_exists('tax_report_activities'):
        op.create_table(
            'tax_report_activities',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column(
                'report_id',
                sa.Integer(),
                sa.ForeignKey('tax_reports.id', ondelete='CASCADE'),
                nullable=False,
                index=True,
            ),
            sa.Column('tenant_id', sa.String(64), nullable=False, index=True),
            sa.Column('action', sa.String(48), nullable=False),
            sa.Column('status_before', sa.String(16), nullable=True),
            sa.Column('status_after', sa.String(16), nullable=True),
            sa.Column('detail', sa.JSON(), nullable=False),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        )


def downgrade() -> None:
    for table in ('tax_report_activities', 'tax_report_attachments'):
        if _table_exists(table):
            op.drop_table(table)


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    return table_name in inspector.get_table_names()
