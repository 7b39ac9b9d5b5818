from alembic import op
import sqlalchemy as sa

revision = "20261019120000"
down_revision = None

ORDER_STATUSES = ("placed", "processing", "shipped", "delivered", "cancelled", "returned")
PAYMENT_STATUSES = ("pending", "processing", "completed", "failed", "refunded")
PAYMENT_METHODS = ("credit_card", "debit_card", "paypal", "cash_on_delivery", "upi")

def upgrade():
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('image', sa.String(length=1024), nullable=True),
        sa.Column('sku', sa.String(length=64), nullable=True, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('stock >= 0', name='check_stock_non_negative'),
        sa.CheckConstraint('price >= 0', name='check_price_non_negative'),
    )
    op.create_index('ix_products_is_active', 'products', ['is_active'])
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_number', sa.String(length=64), nullable=False, unique=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('ship_street', sa.String(length=255), nullable=False),
        sa.Column('ship_city', sa.String(length=120), nullable=False),
        sa.Column('ship_state', sa.String(length=120), nullable=False),
        sa.Column('ship_postal_code', sa.String(length=32), nullable=False),
        sa.Column('ship_country', sa.String(length=120), nullable=False),
        sa.Column('payment_method', sa.Enum(*PAYMENT_METHODS, name='paymentmethod', native_enum=False, length=32), nullable=False, server_default='cash_on_delivery'),
        sa.Column('payment_status', sa.Enum(*PAYMENT_STATUSES, name='paymentstatus', native_enum=False, length=32), nullable=False, server_default='pending'),
        sa.Column('order_status', sa.Enum(*ORDER_STATUSES, name='orderstatus', native_enum=False, length=32), nullable=False, server_default='placed'),
        sa.Column('total_items', sa.Integer(), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('shipping_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('tracking_number', sa.String(length=64), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_order_status', 'orders', ['order_status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('image', sa.String(length=1024), nullable=False),
        sa.CheckConstraint('quantity >= 1', name='check_quantity_positive'),
    )

def downgrade():
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('products')
