"""document store

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-01 00:00:00.000000

Creates the single tenant-scoped documents table that backs every ledger
collection (products, sales, purchases, stockMovements, oldBatteries, ...).

- (tenant_id, collection, doc_key) is the document path and is unique
- id is autoincrement; it is the insertion order used to replay append-only
  facts
- version_id is the optimistic concurrency counter checked on every UPDATE
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c1d2e3f4a5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=128), nullable=False),
        sa.Column('collection', sa.String(length=64), nullable=False),
        sa.Column('doc_key', sa.String(length=255), nullable=False),
        sa.Column('body', sa.JSON(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'collection', 'doc_key', name='uq_documents_tenant_path'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_documents_tenant_id', 'documents', ['tenant_id'])
    op.create_index('ix_documents_tenant_collection', 'documents', ['tenant_id', 'collection'])


def downgrade():
    op.drop_index('ix_documents_tenant_collection', table_name='documents')
    op.drop_index('ix_documents_tenant_id', table_name='documents')
    op.drop_table('documents')
