"""initial branch pos schema

Revision ID: b1c2d3e4f5a6
Revises:
Create Date: 2026-10-17 00:00:00.000000

This migration creates the complete BranchPOS schema from scratch:
- branches, users: tenancy and actor attribution
- products, customers, payment_methods: the catalog the register prices from
- registers, register_sessions: drawers and blind-close reconciliation
- sales, sale_lines, payments: the immutable sale ledger
- document_sequences: per-branch sale numbering
- ledger_events: append-only audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b1c2d3e4f5a6'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # branches / users
    # ============================================================================
    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_branches_code', 'branches', ['code'], unique=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='CASHIER'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_branch_id', 'users', ['branch_id'])

    # ============================================================================
    # catalog
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('tax_rate', sa.Numeric(precision=7, scale=4), nullable=False, server_default='0'),
        sa.Column('is_tax_included', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_weighable', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'sku', name='uq_products_branch_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_branch_id', 'products', ['branch_id'])
    op.create_index('ix_products_is_active', 'products', ['is_active'])

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_code', sa.String(length=32), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('is_wholesale', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('wholesale_discount_percent', sa.Numeric(precision=7, scale=4), nullable=False,
                  server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('customer_code'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'payment_methods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('requires_reference', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # registers / register_sessions
    # ============================================================================
    op.create_table(
        'registers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('register_number', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'register_number', name='uq_registers_branch_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_registers_branch_id', 'registers', ['branch_id'])
    op.create_index('ix_registers_is_active', 'registers', ['is_active'])

    reconciliation_columns = [
        sa.Column(f'{kind}_{bucket}_cents', sa.Integer(), nullable=True)
        for kind in ('declared', 'expected', 'discrepancy')
        for bucket in ('cash', 'card', 'qr', 'transfer')
    ]
    op.create_table(
        'register_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('shift_type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='OPEN'),
        sa.Column('opening_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        *reconciliation_columns,
        sa.Column('sale_count', sa.Integer(), nullable=True),
        sa.Column('sale_total_cents', sa.Integer(), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('force_close_reason', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id'], ),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['cashier_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['closed_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_register_sessions_register_id', 'register_sessions', ['register_id'])
    op.create_index('ix_register_sessions_branch_id', 'register_sessions', ['branch_id'])
    op.create_index('ix_register_sessions_cashier_id', 'register_sessions', ['cashier_id'])
    op.create_index('ix_register_sessions_status', 'register_sessions', ['status'])
    op.create_index('ix_register_sessions_opened_at', 'register_sessions', ['opened_at'])
    op.create_index('ix_register_sessions_register_status', 'register_sessions', ['register_id', 'status'])
    # At most one OPEN session per register
    op.create_index(
        'uq_register_sessions_one_open',
        'register_sessions',
        ['register_id'],
        unique=True,
        sqlite_where=sa.text("status = 'OPEN'"),
        postgresql_where=sa.text("status = 'OPEN'"),
    )

    # ============================================================================
    # sales / sale_lines / payments
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('register_id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('cashier_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('sale_number', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('discount_type', sa.String(length=16), nullable=True),
        sa.Column('discount_value', sa.Numeric(precision=14, scale=4), nullable=True),
        sa.Column('wholesale_discount_percent', sa.Numeric(precision=7, scale=4), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('line_discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cart_discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('wholesale_discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('included_tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('paid_cents', sa.Integer(), nullable=False),
        sa.Column('change_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id'], ),
        sa.ForeignKeyConstraint(['session_id'], ['register_sessions.id'], ),
        sa.ForeignKeyConstraint(['cashier_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['voided_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'sale_number', name='uq_sales_branch_number'),
        sqlite_autoincrement=True
    )
    for column in ('branch_id', 'register_id', 'session_id', 'cashier_id', 'customer_id', 'status'):
        op.create_index(f'ix_sales_{column}', 'sales', [column])
    op.create_index('ix_sales_session_status', 'sales', ['session_id', 'status'])

    op.create_table(
        'sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=12, scale=3), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_percent', sa.Numeric(precision=7, scale=4), nullable=False),
        sa.Column('tax_rate', sa.Numeric(precision=7, scale=4), nullable=False),
        sa.Column('tax_included', sa.Boolean(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('payment_method_id', sa.Integer(), nullable=False),
        sa.Column('method_type', sa.String(length=16), nullable=False),
        sa.Column('method_code', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('change_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reference_number', sa.String(length=128), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount_cents > 0', name='ck_payments_payment_amount_positive'),
        sa.CheckConstraint('change_cents >= 0 AND change_cents <= amount_cents', name='ck_payments_payment_change_bounds'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payments_sale_id', 'payments', ['sale_id'])
    op.create_index('ix_payments_payment_method_id', 'payments', ['payment_method_id'])
    op.create_index('ix_payments_method_type', 'payments', ['method_type'])

    # ============================================================================
    # document_sequences / ledger_events
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('branch_id', 'document_type', name='uq_doc_sequences_branch_type'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_branch_id', 'document_sequences', ['branch_id'])

    op.create_table(
        'ledger_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('register_id', sa.Integer(), nullable=True),
        sa.Column('session_id', sa.Integer(), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], ),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['register_id'], ['registers.id'], ),
        sa.ForeignKeyConstraint(['session_id'], ['register_sessions.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    for column in ('branch_id', 'event_type', 'entity_id', 'actor_user_id', 'register_id',
                   'session_id', 'sale_id', 'occurred_at'):
        op.create_index(f'ix_ledger_events_{column}', 'ledger_events', [column])
    op.create_index('ix_ledger_events_branch_occurred', 'ledger_events', ['branch_id', 'occurred_at'])


def downgrade():
    op.drop_table('ledger_events')
    op.drop_table('document_sequences')
    op.drop_table('payments')
    op.drop_table('sale_lines')
    op.drop_table('sales')
    op.drop_index('uq_register_sessions_one_open', table_name='register_sessions')
    op.drop_table('register_sessions')
    op.drop_table('registers')
    op.drop_table('payment_methods')
    op.drop_table('customers')
    op.drop_table('products')
    op.drop_table('users')
    op.drop_table('branches')
