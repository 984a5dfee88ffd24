"""Allow a new fiscal document once the previous one is voided

Revision ID: 20261019_fiscal_reissue
Revises: 20261018_initial
Create Date: 2026-10-19

The per-sale unique constraint becomes a partial unique index that ignores
voided documents; sale_id keeps a plain index for lookups.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_fiscal_reissue'
down_revision = '20261018_initial'
branch_labels = None
depends_on = None

LIVE_DOCUMENT = sa.text("status != 'voided'")


def upgrade():
    with op.batch_alter_table('fiscal_documents', schema=None) as batch_op:
        batch_op.drop_constraint('uq_fiscal_documents_sale_id', type_='unique')
        batch_op.create_index('ix_fiscal_documents_sale_id', ['sale_id'], unique=False)

    op.create_index(
        'uq_fiscal_documents_live_sale',
        'fiscal_documents',
        ['sale_id'],
        unique=True,
        sqlite_where=LIVE_DOCUMENT,
        postgresql_where=LIVE_DOCUMENT,
    )


def downgrade():
    op.drop_index('uq_fiscal_documents_live_sale', table_name='fiscal_documents')

    with op.batch_alter_table('fiscal_documents', schema=None) as batch_op:
        batch_op.drop_index('ix_fiscal_documents_sale_id')
        batch_op.create_unique_constraint('uq_fiscal_documents_sale_id', ['sale_id'])
