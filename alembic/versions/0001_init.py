"""catalog, customers, orders and stock ledger

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'products',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('slug', sa.String(200), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('base_price', sa.Integer, nullable=False),
        sa.Column('compare_at_price', sa.Integer, nullable=True),
        sa.Column('tags', sa.JSON, nullable=False),
        sa.Column('deleted_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_products_slug', 'products', ['slug'], unique=True)

    op.create_table(
        'variants',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('product_id', sa.String(32), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('size', sa.String(20), nullable=False),
        sa.Column('color', sa.String(50), nullable=False),
        sa.Column('sku', sa.String(80), nullable=False),
        sa.Column('stock_qty', sa.Integer, nullable=False),
        sa.Column('low_stock_threshold', sa.Integer, nullable=False),
        sa.Column('price_override', sa.Integer, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
        sa.UniqueConstraint('product_id', 'size', 'color', name='uq_variants_product_size_color'),
        sa.CheckConstraint('stock_qty >= 0', name='ck_variants_stock_qty_non_negative'),
    )
    op.create_index('ix_variants_product_id', 'variants', ['product_id'])
    op.create_index('ix_variants_sku', 'variants', ['sku'], unique=True)

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('variant_id', sa.String(32), sa.ForeignKey('variants.id'), nullable=False),
        sa.Column('delta', sa.Integer, nullable=False),
        sa.Column('reason', sa.String(255), nullable=True),
        sa.Column('actor_admin_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_stock_movements_variant_id', 'stock_movements', ['variant_id'])

    op.create_table(
        'customers',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_customers_email', 'customers', ['email'], unique=True)

    op.create_table(
        'orders',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('order_number', sa.String(50), nullable=False),
        sa.Column('idempotency_key', sa.String(100), nullable=True, unique=True),
        sa.Column('customer_id', sa.String(32), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('shipping_address', sa.JSON, nullable=False),
        sa.Column('payment_details', sa.JSON, nullable=True),
        sa.Column('subtotal', sa.Integer, nullable=False),
        sa.Column('shipping_fee', sa.Integer, nullable=False),
        sa.Column('total', sa.Integer, nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('fulfillment_status', sa.String(20), nullable=False),
        sa.Column('tracking_number', sa.String(100), nullable=True),
        sa.Column('courier', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', sa.String(32), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_id', sa.String(32), nullable=False),
        sa.Column('variant_id', sa.String(32), nullable=False),
        sa.Column('name_snapshot', sa.String(200), nullable=False),
        sa.Column('sku_snapshot', sa.String(80), nullable=False),
        sa.Column('price_snapshot', sa.Integer, nullable=False),
        sa.Column('qty', sa.Integer, nullable=False),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

def downgrade():
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('customers')
    op.drop_table('stock_movements')
    op.drop_table('variants')
    op.drop_table('products')
