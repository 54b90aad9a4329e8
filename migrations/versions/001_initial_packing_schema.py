"""
Alembic migration: Initial packing schema.

Creates the catalog tables (products, components, kit entries), orders with
their ordered line items, the append-only usage ledger and the stock
adjustment audit table. Check constraints keep component stock non-negative
and kit and line item quantities positive.

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:12:40.512083
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers, used by Alembic
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            'created_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp when the record was created',
        ),
        sa.Column(
            'updated_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp when the record was last updated',
        ),
    ]


def upgrade() -> None:
    """
    Upgrade database schema with the packing tables.

    Tables are created leaves first so every foreign key target exists.
    """
    order_status = sa.Enum(
        'pending', 'completed',
        name='order_status',
        create_constraint=True,
    )
    ledger_entry_type = sa.Enum(
        'consume', 'retract',
        name='ledger_entry_type',
        create_constraint=True,
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sku', sa.String(64), nullable=False, comment='Unique stock keeping unit'),
        sa.Column('name', sa.String(200), nullable=False, comment='Product display name'),
        *_timestamps(),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
    )

    op.create_table(
        'components',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('sku', sa.String(64), nullable=True, comment='Supplier SKU'),
        sa.Column('name', sa.String(200), nullable=False, comment='Component display name'),
        sa.Column(
            'current_stock',
            sa.Integer(),
            nullable=False,
            server_default='0',
            comment='Units currently on hand',
        ),
        sa.Column(
            'min_stock_alert',
            sa.Integer(),
            nullable=False,
            server_default='10',
            comment='Low stock alert level',
        ),
        *_timestamps(),
        sa.CheckConstraint('current_stock >= 0', name='ck_components_stock_non_negative'),
        sa.CheckConstraint('min_stock_alert >= 0', name='ck_components_alert_non_negative'),
    )

    op.create_table(
        'kit_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'product_id',
            sa.Integer(),
            sa.ForeignKey('products.id', ondelete='CASCADE'),
            nullable=False,
            comment='Product this kit row belongs to',
        ),
        sa.Column(
            'component_id',
            sa.Integer(),
            sa.ForeignKey('components.id', ondelete='CASCADE'),
            nullable=False,
            comment='Component consumed',
        ),
        sa.Column(
            'quantity_per_unit',
            sa.Integer(),
            nullable=False,
            server_default='1',
            comment='Units of the component consumed per packed unit',
        ),
        sa.Column(
            'is_optional',
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
            comment='Whether the component may be skipped',
        ),
        *_timestamps(),
        sa.CheckConstraint('quantity_per_unit >= 1', name='ck_kit_entries_quantity_positive'),
    )
    op.create_index('ix_kit_entries_product_id', 'kit_entries', ['product_id'])
    op.create_index(
        'ix_kit_entries_product_component',
        'kit_entries',
        ['product_id', 'component_id'],
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('order_number', sa.String(50), nullable=False, comment='Human-readable order number'),
        sa.Column('customer_name', sa.String(200), nullable=True, comment='Customer name'),
        sa.Column(
            'status',
            order_status,
            nullable=False,
            server_default='pending',
            comment='Packing status',
        ),
        sa.Column(
            'completed_at',
            sa.DateTime(timezone=True),
            nullable=True,
            comment='Timestamp when the order was fully packed',
        ),
        *_timestamps(),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
    )
    op.create_index('ix_orders_status', 'orders', ['status'])

    op.create_table(
        'order_line_items',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'order_id',
            sa.Integer(),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
            comment='Owning order',
        ),
        sa.Column('position', sa.Integer(), nullable=False, comment='Zero-based position within the order'),
        sa.Column(
            'product_id',
            sa.Integer(),
            sa.ForeignKey('products.id', ondelete='RESTRICT'),
            nullable=False,
            comment='Ordered product',
        ),
        sa.Column('requested_quantity', sa.Integer(), nullable=False, comment='Units ordered'),
        sa.Column('product_name', sa.String(200), nullable=False, comment='Product name at order entry'),
        sa.Column('sku', sa.String(64), nullable=True, comment='Product SKU at order entry'),
        *_timestamps(),
        sa.UniqueConstraint('order_id', 'position', name='uq_order_line_items_position'),
        sa.CheckConstraint(
            'requested_quantity >= 1',
            name='ck_order_line_items_quantity_positive',
        ),
    )
    op.create_index('ix_order_line_items_order_id', 'order_line_items', ['order_id'])

    op.create_table(
        'usage_ledger_entries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'order_id',
            sa.Integer(),
            sa.ForeignKey('orders.id', ondelete='CASCADE'),
            nullable=False,
            comment='Order the components were used for',
        ),
        sa.Column(
            'component_id',
            sa.Integer(),
            sa.ForeignKey('components.id', ondelete='RESTRICT'),
            nullable=False,
            comment='Component used',
        ),
        sa.Column(
            'quantity_used',
            sa.Integer(),
            nullable=False,
            comment='Units used, negative for retractions',
        ),
        sa.Column(
            'entry_type',
            ledger_entry_type,
            nullable=False,
            server_default='consume',
            comment='consume or retract',
        ),
        sa.Column('packed_by', sa.String(100), nullable=True, comment='Packer who recorded the row'),
        sa.Column(
            'recorded_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp when the row was appended',
        ),
    )
    op.create_index(
        'ix_usage_ledger_order_component',
        'usage_ledger_entries',
        ['order_id', 'component_id'],
    )

    op.create_table(
        'stock_adjustments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'component_id',
            sa.Integer(),
            sa.ForeignKey('components.id', ondelete='CASCADE'),
            nullable=False,
            comment='Adjusted component',
        ),
        sa.Column(
            'quantity_change',
            sa.Integer(),
            nullable=False,
            comment='Signed change applied to current_stock',
        ),
        sa.Column('reason', sa.String(200), nullable=False, comment='Why the stock changed'),
        sa.Column(
            'order_id',
            sa.Integer(),
            sa.ForeignKey('orders.id', ondelete='SET NULL'),
            nullable=True,
            comment='Order the change was made for, if any',
        ),
        sa.Column(
            'adjusted_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment='Timestamp of the adjustment',
        ),
    )
    op.create_index('ix_stock_adjustments_component_id', 'stock_adjustments', ['component_id'])


def downgrade() -> None:
    """Drop the packing tables in reverse dependency order."""
    op.drop_index('ix_stock_adjustments_component_id', table_name='stock_adjustments')
    op.drop_table('stock_adjustments')

    op.drop_index('ix_usage_ledger_order_component', table_name='usage_ledger_entries')
    op.drop_table('usage_ledger_entries')

    op.drop_index('ix_order_line_items_order_id', table_name='order_line_items')
    op.drop_table('order_line_items')

    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_table('orders')

    op.drop_index('ix_kit_entries_product_component', table_name='kit_entries')
    op.drop_index('ix_kit_entries_product_id', table_name='kit_entries')
    op.drop_table('kit_entries')

    op.drop_table('components')
    op.drop_table('products')

    sa.Enum(name='ledger_entry_type').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='order_status').drop(op.get_bind(), checkfirst=True)
