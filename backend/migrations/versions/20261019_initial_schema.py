"""initial schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete Tenantory schema:
- organizations / memberships / application_users: tenancy and identity mirror
- categories, products, warehouses, inventory_movements: inventory
- customers, suppliers, orders, order_items: order management
- expense_categories, expenses: expense tracking
- subscriptions, webhook_events: billing and webhook idempotency ledger

Every tenant-owned table carries org_id (FK organizations.id, CASCADE) plus the
audit and soft-delete columns.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_by', sa.String(255), nullable=True),
    ]


def _soft_delete_columns():
    return [
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by', sa.String(255), nullable=True),
    ]


def _tenant_columns():
    return [sa.Column('org_id', sa.Uuid(), nullable=False)]


def _tenant_fk():
    return sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ondelete='CASCADE')


def _index_tenant_table(table):
    with op.batch_alter_table(table, schema=None) as batch_op:
        batch_op.create_index(f'ix_{table}_org_id', ['org_id'], unique=False)
        batch_op.create_index(f'ix_{table}_is_deleted', ['is_deleted'], unique=False)


def upgrade():
    # ============================================================================
    # organizations: the tenant boundary
    # ============================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('slug', sa.String(200), nullable=True),
        sa.Column('description', sa.String(1000), nullable=True),
        sa.Column('industry', sa.String(100), nullable=True),
        sa.Column('website', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('tax_id', sa.String(50), nullable=True),
        sa.Column('default_currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('time_zone', sa.String(64), nullable=False, server_default='UTC'),
        sa.Column('settings', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('has_completed_setup', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('setup_completed_at', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        *_soft_delete_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id', name='uq_organizations_external_id'),
    )
    with op.batch_alter_table('organizations', schema=None) as batch_op:
        batch_op.create_index('ix_organizations_slug', ['slug'], unique=False)
        batch_op.create_index('ix_organizations_is_active', ['is_active'], unique=False)
        batch_op.create_index('ix_organizations_is_deleted', ['is_deleted'], unique=False)

    # ============================================================================
    # application_users: global mirror of identity-provider users
    # ============================================================================
    op.create_table(
        'application_users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('username', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        *_soft_delete_columns(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id', name='uq_application_users_external_id'),
    )
    with op.batch_alter_table('application_users', schema=None) as batch_op:
        batch_op.create_index('ix_application_users_email', ['email'], unique=False)
        batch_op.create_index('ix_application_users_is_active', ['is_active'], unique=False)
        batch_op.create_index('ix_application_users_is_deleted', ['is_deleted'], unique=False)

    # ============================================================================
    # memberships: user <-> organization with role; at most one active per user
    # ============================================================================
    op.create_table(
        'memberships',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('org_id', sa.Uuid(), nullable=False),
        sa.Column('role', sa.String(32), nullable=False, server_default='User'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['user_id'], ['application_users.id'], ondelete='CASCADE'),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'org_id', name='uq_memberships_user_org'),
    )
    with op.batch_alter_table('memberships', schema=None) as batch_op:
        batch_op.create_index('ix_memberships_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_memberships_org_id', ['org_id'], unique=False)
        batch_op.create_index(
            'uq_memberships_one_active_per_user',
            ['user_id'],
            unique=True,
            sqlite_where=sa.text('is_active = 1'),
            postgresql_where=sa.text('is_active = true'),
        )

    # ============================================================================
    # inventory
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('parent_category_id', sa.Uuid(), nullable=True),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['parent_category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_categories_org_name'),
    )
    _index_tenant_table('categories')
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.create_index('ix_categories_parent_category_id', ['parent_category_id'], unique=False)

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('sku', sa.String(50), nullable=False),
        sa.Column('description', sa.String(1000), nullable=True),
        sa.Column('barcode', sa.String(64), nullable=True),
        sa.Column('unit', sa.String(32), nullable=True),
        sa.Column('category_id', sa.Uuid(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('cost_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('min_stock_level', sa.Integer(), nullable=True),
        sa.Column('max_stock_level', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(32), nullable=False, server_default='Active'),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'sku', name='uq_products_org_sku'),
    )
    _index_tenant_table('products')
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_category_id', ['category_id'], unique=False)
        batch_op.create_index('ix_products_status', ['status'], unique=False)
        batch_op.create_index('ix_products_org_name', ['org_id', 'name'], unique=False)

    op.create_table(
        'warehouses',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column('postal_code', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_warehouses_org_name'),
    )
    _index_tenant_table('warehouses')

    op.create_table(
        'inventory_movements',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('warehouse_id', sa.Uuid(), nullable=True),
        sa.Column('movement_type', sa.String(32), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reference', sa.String(100), nullable=True),
        sa.Column('notes', sa.String(500), nullable=True),
        sa.Column('movement_date', sa.DateTime(timezone=True), nullable=False),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['warehouse_id'], ['warehouses.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    _index_tenant_table('inventory_movements')
    with op.batch_alter_table('inventory_movements', schema=None) as batch_op:
        batch_op.create_index('ix_inventory_movements_warehouse_id', ['warehouse_id'], unique=False)
        batch_op.create_index(
            'ix_inventory_movements_product_date', ['product_id', 'movement_date'], unique=False
        )

    # ============================================================================
    # orders
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('company_name', sa.String(200), nullable=True),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('notes', sa.String(1000), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
    )
    _index_tenant_table('customers')

    op.create_table(
        'suppliers',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('contact_name', sa.String(200), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
    )
    _index_tenant_table('suppliers')

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('order_number', sa.String(50), nullable=False),
        sa.Column('order_type', sa.String(32), nullable=False, server_default='Sale'),
        sa.Column('status', sa.String(32), nullable=False, server_default='Draft'),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expected_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('supplier_id', sa.Uuid(), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('shipping_amount', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('notes', sa.String(1000), nullable=True),
        sa.Column('shipping_address', sa.String(500), nullable=True),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'order_number', name='uq_orders_org_number'),
    )
    _index_tenant_table('orders')
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index('ix_orders_status', ['status'], unique=False)
        batch_op.create_index('ix_orders_org_date', ['org_id', 'order_date'], unique=False)

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
    )
    _index_tenant_table('order_items')
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index('ix_order_items_order_id', ['order_id'], unique=False)
        batch_op.create_index('ix_order_items_product_id', ['product_id'], unique=False)

    # ============================================================================
    # expenses
    # ============================================================================
    op.create_table(
        'expense_categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'name', name='uq_expense_categories_org_name'),
    )
    _index_tenant_table('expense_categories')

    op.create_table(
        'expenses',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('expense_category_id', sa.Uuid(), nullable=True),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('expense_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('vendor', sa.String(200), nullable=True),
        sa.Column('reference', sa.String(100), nullable=True),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.ForeignKeyConstraint(['expense_category_id'], ['expense_categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    _index_tenant_table('expenses')
    with op.batch_alter_table('expenses', schema=None) as batch_op:
        batch_op.create_index('ix_expenses_expense_category_id', ['expense_category_id'], unique=False)

    # ============================================================================
    # billing
    # ============================================================================
    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid(), nullable=False),
        *_tenant_columns(),
        sa.Column('plan_name', sa.String(50), nullable=False),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('stripe_subscription_id', sa.String(255), nullable=True),
        sa.Column('stripe_price_id', sa.String(255), nullable=True),
        sa.Column('monthly_price', sa.Numeric(12, 2), nullable=False, server_default=sa.text('0')),
        sa.Column('status', sa.String(32), nullable=False, server_default='Trial'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trial_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('max_users', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('max_products', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('max_orders', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('max_warehouses', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('has_reporting', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('has_advanced_reporting', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('has_invoicing', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        *_audit_columns(),
        *_soft_delete_columns(),
        _tenant_fk(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', name='uq_subscriptions_org'),
        sa.UniqueConstraint('stripe_subscription_id', name='uq_subscriptions_stripe_subscription'),
    )
    _index_tenant_table('subscriptions')
    with op.batch_alter_table('subscriptions', schema=None) as batch_op:
        batch_op.create_index('ix_subscriptions_status', ['status'], unique=False)
        batch_op.create_index('ix_subscriptions_stripe_customer', ['stripe_customer_id'], unique=False)

    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(32), nullable=False),
        sa.Column('event_id', sa.String(255), nullable=False),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'event_id', name='uq_webhook_events_provider_event'),
        sqlite_autoincrement=True,
    )


def downgrade():
    op.drop_table('webhook_events')
    op.drop_table('subscriptions')
    op.drop_table('expenses')
    op.drop_table('expense_categories')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('suppliers')
    op.drop_table('customers')
    op.drop_table('inventory_movements')
    op.drop_table('warehouses')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('memberships')
    op.drop_table('application_users')
    op.drop_table('organizations')
