"""create_store_order_tables

Revision ID: 3f9c1a7d2b10
Revises:
Create Date: 2026-10-19 09:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID


# revision identifiers, used by Alembic.
revision: str = '3f9c1a7d2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


movement_type_enum = sa.Enum(
    'reservation', 'release', name='store_inventory_movement_type_enum'
)
order_status_enum = sa.Enum(
    'pending', 'confirmed', 'processing', 'shipping', 'delivered',
    'cancelled', 'payment_failed',
    name='store_order_status_enum',
)
payment_method_enum = sa.Enum('bank', 'cod', name='store_payment_method_enum')
voucher_type_enum = sa.Enum(
    'percentage', 'fixed_amount', name='store_voucher_type_enum'
)
notification_type_enum = sa.Enum(
    'order_requested', 'order_confirmed', 'order_processing',
    'order_shipping', 'order_delivered',
    name='store_notification_type_enum',
)


def upgrade() -> None:
    """Upgrade schema - Create products, inventory, voucher, order and notification tables."""

    op.create_table(
        'store_products',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_store_products_non_negative_stock'),
        sa.CheckConstraint('unit_price >= 0', name='ck_store_products_non_negative_price'),
        sa.PrimaryKeyConstraint('id', name='pk_store_products'),
    )

    op.create_table(
        'store_inventory_movements',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), nullable=False),
        sa.Column('movement_type', movement_type_enum, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(30), nullable=True),
        sa.Column('reference_id', UUID(as_uuid=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_store_inventory_movements_positive_movement_quantity'),
        sa.ForeignKeyConstraint(
            ['product_id'], ['store_products.id'],
            name='fk_store_inventory_movements_product_id_store_products',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_store_inventory_movements'),
    )
    op.create_index(
        'ix_store_inventory_movements_reference',
        'store_inventory_movements',
        ['reference_type', 'reference_id'],
    )

    op.create_table(
        'store_vouchers',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', voucher_type_enum, nullable=False),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('can_stack', sa.Boolean(), server_default='false', nullable=True),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('used_count >= 0', name='ck_store_vouchers_non_negative_used_count'),
        sa.PrimaryKeyConstraint('id', name='pk_store_vouchers'),
        sa.UniqueConstraint('code', name='uq_store_vouchers_code'),
    )

    op.create_table(
        'store_voucher_usages',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('voucher_ids', JSONB(), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('base_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_store_voucher_usages'),
    )

    op.create_table(
        'store_orders',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('order_code', sa.String(32), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=True),
        sa.Column('customer_name', sa.String(255), nullable=False),
        sa.Column('customer_phone', sa.String(50), nullable=False),
        sa.Column('customer_email', sa.String(255), nullable=True),
        sa.Column('shipping_address', sa.Text(), nullable=False),
        sa.Column('subtotal_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(12, 2), server_default='0', nullable=True),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('voucher_usage_id', UUID(as_uuid=True), nullable=True),
        sa.Column('status', order_status_enum, server_default='pending', nullable=False),
        sa.Column('payment_method', payment_method_enum, server_default='bank', nullable=False),
        sa.Column('payment_link', sa.String(500), nullable=True),
        sa.Column('payment_link_id', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('total_amount >= 0', name='ck_store_orders_non_negative_total'),
        sa.ForeignKeyConstraint(
            ['voucher_usage_id'], ['store_voucher_usages.id'],
            name='fk_store_orders_voucher_usage_id_store_voucher_usages',
            ondelete='SET NULL',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_store_orders'),
        sa.UniqueConstraint('voucher_usage_id', name='uq_store_orders_voucher_usage_id'),
    )
    op.create_index('ix_store_orders_order_code', 'store_orders', ['order_code'], unique=True)
    op.create_index('ix_store_orders_user_id', 'store_orders', ['user_id'])
    op.create_index('ix_store_orders_status_created_at', 'store_orders', ['status', 'created_at'])

    op.create_table(
        'store_order_items',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', UUID(as_uuid=True), nullable=False),
        sa.Column('product_id', UUID(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_store_order_items_positive_quantity'),
        sa.ForeignKeyConstraint(
            ['order_id'], ['store_orders.id'],
            name='fk_store_order_items_order_id_store_orders',
            ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['product_id'], ['store_products.id'],
            name='fk_store_order_items_product_id_store_products',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_store_order_items'),
    )

    op.create_table(
        'store_notifications',
        sa.Column('id', UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('type', notification_type_enum, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default='false', nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_store_notifications'),
    )
    op.create_index(
        'ix_store_notifications_user_id_created_at',
        'store_notifications',
        ['user_id', 'created_at'],
    )


def downgrade() -> None:
    """Downgrade schema - Drop store order tables."""
    op.drop_index('ix_store_notifications_user_id_created_at', table_name='store_notifications')
    op.drop_table('store_notifications')
    op.drop_table('store_order_items')
    op.drop_index('ix_store_orders_status_created_at', table_name='store_orders')
    op.drop_index('ix_store_orders_user_id', table_name='store_orders')
    op.drop_index('ix_store_orders_order_code', table_name='store_orders')
    op.drop_table('store_orders')
    op.drop_table('store_voucher_usages')
    op.drop_table('store_vouchers')
    op.drop_index('ix_store_inventory_movements_reference', table_name='store_inventory_movements')
    op.drop_table('store_inventory_movements')
    op.drop_table('store_products')

    bind = op.get_bind()
    for enum in (
        notification_type_enum,
        voucher_type_enum,
        payment_method_enum,
        order_status_enum,
        movement_type_enum,
    ):
        enum.drop(bind, checkfirst=True)
