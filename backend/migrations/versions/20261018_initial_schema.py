"""Initial back-office schema: catalog, sales, fiscal documents, ledger

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18

This migration creates:
1. Parties (customers, suppliers)
2. Catalog (categories tree, products, stock movement journal)
3. Sales and sale lines, numbered from document_sequences
4. Fiscal documents (one per sale, unique access key)
5. Ledger entries (receivables and payables, single table)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. PARTIES
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('tax_id', sa.String(length=14), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tax_id'),
        sqlite_autoincrement=True,
    )

    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('legal_name', sa.String(length=100), nullable=False),
        sa.Column('trade_name', sa.String(length=100), nullable=True),
        sa.Column('tax_id', sa.String(length=14), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tax_id'),
        sqlite_autoincrement=True,
    )

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('path', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('default_margin', sa.Numeric(5, 2), nullable=True),
        sa.Column('default_icms_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('default_pis_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('default_cofins_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('default_ncm', sa.String(length=8), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.create_index('ix_categories_name', ['name'], unique=False)
        batch_op.create_index('ix_categories_parent_id', ['parent_id'], unique=False)
        batch_op.create_index('ix_categories_status', ['status'], unique=False)
        batch_op.create_index('ix_categories_parent_status', ['parent_id', 'status'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=14), nullable=True),
        sa.Column('description', sa.String(length=100), nullable=False),
        sa.Column('unit', sa.String(length=3), nullable=False, server_default='UN'),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('cost_price', sa.Numeric(15, 4), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('promo_price', sa.Numeric(15, 2), nullable=True),
        sa.Column('promo_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('promo_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stock_current', sa.Numeric(15, 3), nullable=False, server_default='0'),
        sa.Column('stock_min', sa.Numeric(15, 3), nullable=False, server_default='0'),
        sa.Column('stock_max', sa.Numeric(15, 3), nullable=False, server_default='0'),
        sa.Column('ncm', sa.String(length=8), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_category_id', ['category_id'], unique=False)
        batch_op.create_index('ix_products_supplier_id', ['supplier_id'], unique=False)
        batch_op.create_index('ix_products_status', ['status'], unique=False)
        batch_op.create_index('ix_products_description', ['description'], unique=False)

    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sequence_key', sa.String(length=64), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sequence_key'),
        sqlite_autoincrement=True,
    )

    # ==========================================================================
    # 3. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('seller_id', sa.Integer(), nullable=False),
        sa.Column('sale_type', sa.String(length=16), nullable=False, server_default='counter'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('discount_pct', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('discount_value', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('surcharge_pct', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('surcharge_value', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('freight', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('installments', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('payment_terms', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('sold_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('expected_delivery_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stock_applied_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('number'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_customer_id', ['customer_id'], unique=False)
        batch_op.create_index('ix_sales_seller_id', ['seller_id'], unique=False)
        batch_op.create_index('ix_sales_status', ['status'], unique=False)
        batch_op.create_index('ix_sales_status_sold', ['status', 'sold_at'], unique=False)

    op.create_table('sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('product_code', sa.String(length=64), nullable=False),
        sa.Column('product_description', sa.String(length=100), nullable=False),
        sa.Column('unit', sa.String(length=3), nullable=False),
        sa.Column('quantity', sa.Numeric(15, 3), nullable=False),
        sa.Column('unit_price', sa.Numeric(15, 4), nullable=False),
        sa.Column('original_unit_price', sa.Numeric(15, 4), nullable=False),
        sa.Column('discount_pct', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('discount_value', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('surcharge_pct', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('surcharge_value', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('unit_cost', sa.Numeric(15, 4), nullable=False, server_default='0'),
        sa.Column('margin', sa.Numeric(9, 2), nullable=True),
        sa.Column('ncm', sa.String(length=8), nullable=True),
        sa.Column('cfop', sa.String(length=4), nullable=True),
        sa.Column('icms_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('pis_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('cofins_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', 'sequence', name='uq_sale_lines_sale_sequence'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('sale_lines', schema=None) as batch_op:
        batch_op.create_index('ix_sale_lines_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_sale_lines_product_id', ['product_id'], unique=False)

    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('direction', sa.String(length=3), nullable=False),
        sa.Column('quantity', sa.Numeric(15, 3), nullable=False),
        sa.Column('previous_balance', sa.Numeric(15, 3), nullable=False),
        sa.Column('new_balance', sa.Numeric(15, 3), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movements_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_stock_movements_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_stock_movements_product_occurred', ['product_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 4. FISCAL DOCUMENTS
    # ==========================================================================
    op.create_table('fiscal_documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=24), nullable=False, server_default='retail_receipt'),
        sa.Column('series', sa.Integer(), nullable=False),
        sa.Column('number', sa.Integer(), nullable=False),
        sa.Column('access_key', sa.String(length=44), nullable=False),
        sa.Column('control_number', sa.String(length=8), nullable=False),
        sa.Column('emission_mode', sa.String(length=1), nullable=False, server_default='1'),
        sa.Column('environment', sa.String(length=16), nullable=False, server_default='homologation'),
        sa.Column('authorization_protocol', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='drafting'),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('authorized_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total', sa.Numeric(15, 2), nullable=False),
        sa.Column('products_total', sa.Numeric(15, 2), nullable=False),
        sa.Column('discount_total', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('surcharge_total', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('freight_total', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('insurance_total', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('other_expenses_total', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('icms_base', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('icms_value', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('icms_st_base', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('icms_st_value', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('pis_value', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('cofins_value', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('ipi_value', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('additional_info', sa.Text(), nullable=True),
        sa.Column('cancellation_justification', sa.Text(), nullable=True),
        sa.Column('void_justification', sa.Text(), nullable=True),
        sa.Column('authority_code', sa.String(length=16), nullable=True),
        sa.Column('authority_message', sa.Text(), nullable=True),
        sa.Column('submission_attempts', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', name='uq_fiscal_documents_sale_id'),
        sa.UniqueConstraint('access_key'),
        sa.UniqueConstraint('authorization_protocol'),
        sa.UniqueConstraint('number', 'series', 'document_type', name='uq_fiscal_documents_number_series_type'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('fiscal_documents', schema=None) as batch_op:
        batch_op.create_index('ix_fiscal_documents_status', ['status'], unique=False)
        batch_op.create_index('ix_fiscal_documents_status_issued', ['status', 'issued_at'], unique=False)

    # ==========================================================================
    # 5. LEDGER ENTRIES (receivable | payable)
    # ==========================================================================
    op.create_table('ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('document_number', sa.String(length=64), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('settlement_date', sa.Date(), nullable=True),
        sa.Column('amount_original', sa.Numeric(15, 2), nullable=False),
        sa.Column('amount_interest', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('amount_penalty', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('amount_discount', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('amount_settled', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('amount_remaining', sa.Numeric(15, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='open'),
        sa.Column('contested', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('settlement_method', sa.String(length=16), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('cost_center', sa.String(length=64), nullable=True),
        sa.Column('recurring', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('periodicity', sa.String(length=16), nullable=True),
        sa.Column('installment_number', sa.Integer(), nullable=True),
        sa.Column('installment_total', sa.Integer(), nullable=True),
        sa.Column('recurrence_parent_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['recurrence_parent_id'], ['ledger_entries.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table('ledger_entries', schema=None) as batch_op:
        batch_op.create_index('ix_ledger_entries_kind', ['kind'], unique=False)
        batch_op.create_index('ix_ledger_entries_status', ['status'], unique=False)
        batch_op.create_index('ix_ledger_entries_due_date', ['due_date'], unique=False)
        batch_op.create_index('ix_ledger_entries_recurrence_parent_id', ['recurrence_parent_id'], unique=False)
        batch_op.create_index('ix_ledger_entries_customer_id', ['customer_id'], unique=False)
        batch_op.create_index('ix_ledger_entries_sale_id', ['sale_id'], unique=False)
        batch_op.create_index('ix_ledger_entries_supplier_id', ['supplier_id'], unique=False)
        batch_op.create_index('ix_ledger_entries_kind_status_due', ['kind', 'status', 'due_date'], unique=False)


def downgrade():
    op.drop_table('ledger_entries')
    op.drop_table('fiscal_documents')
    op.drop_table('stock_movements')
    op.drop_table('sale_lines')
    op.drop_table('sales')
    op.drop_table('document_sequences')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('suppliers')
    op.drop_table('customers')
