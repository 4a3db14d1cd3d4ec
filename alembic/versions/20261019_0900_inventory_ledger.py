"""Create catalog, movement ledger, daily balance and transfer tables

Revision ID: 20261019_0900_inventory_ledger
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration creates a tenant store from scratch:
- branches, counters, boxes, categories, products, tag_assignments
- stock_movements: append-only movement ledger
- daily_stock_balances: per-product daily snapshots
- stock_transfers, stock_transfer_items, stock_reservations
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '20261019_0900_inventory_ledger'
down_revision = None
branch_labels = None
depends_on = None


product_status = sa.Enum('ACTIVE', 'SOLD', 'INACTIVE', name='productstatus')
movement_type = sa.Enum(
    'ADDITION', 'SALE', 'RETURN', 'TRANSFER_IN', 'TRANSFER_OUT', 'ADJUSTMENT',
    name='movementtype',
)
transfer_type = sa.Enum('BRANCH', 'COUNTER', 'BOX', 'MIXED', name='transfertype')
transfer_status = sa.Enum(
    'PENDING', 'IN_TRANSIT', 'COMPLETED', 'CANCELLED', 'REJECTED',
    name='transferstatus',
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create inventory tables."""

    # ===========================================
    # CATALOG
    # ===========================================

    op.create_table(
        'branches',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_branches'),
    )

    op.create_table(
        'counters',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('branch_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_counters'),
        sa.ForeignKeyConstraint(
            ['branch_id'], ['branches.id'],
            name='fk_counters_branch_id_branches', ondelete='CASCADE',
        ),
    )
    op.create_index('ix_counters_branch_id', 'counters', ['branch_id'])

    op.create_table(
        'boxes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.String(200), nullable=True),
        sa.Column('box_type', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_boxes'),
    )

    op.create_table(
        'categories',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_categories'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('item_code', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('branch_id', sa.Uuid(), nullable=False),
        sa.Column('counter_id', sa.Uuid(), nullable=False),
        sa.Column('box_id', sa.Uuid(), nullable=True),
        sa.Column('mrp', sa.Numeric(18, 2), nullable=False),
        sa.Column('status', product_status, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('item_code', name='uq_products_item_code'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name='fk_products_category_id_categories'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_products_branch_id_branches'),
        sa.ForeignKeyConstraint(['counter_id'], ['counters.id'], name='fk_products_counter_id_counters'),
        sa.ForeignKeyConstraint(['box_id'], ['boxes.id'], name='fk_products_box_id_boxes'),
    )
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_branch_id', 'products', ['branch_id'])
    op.create_index('ix_products_counter_id', 'products', ['counter_id'])

    op.create_table(
        'tag_assignments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tag_code', sa.String(50), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(), nullable=False),
        sa.Column('unassigned_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_tag_assignments'),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'],
            name='fk_tag_assignments_product_id_products', ondelete='CASCADE',
        ),
    )
    op.create_index('ix_tag_assignments_product_id', 'tag_assignments', ['product_id'])
    op.create_index('ix_tag_assignments_tag_code_is_active', 'tag_assignments', ['tag_code', 'is_active'])

    # ===========================================
    # TRANSFERS
    # ===========================================

    op.create_table(
        'stock_transfers',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('transfer_number', sa.String(50), nullable=False),
        sa.Column('transfer_type', transfer_type, nullable=False),
        sa.Column('status', transfer_status, nullable=False),
        sa.Column('source_branch_id', sa.Uuid(), nullable=False),
        sa.Column('source_counter_id', sa.Uuid(), nullable=False),
        sa.Column('source_box_id', sa.Uuid(), nullable=True),
        sa.Column('destination_branch_id', sa.Uuid(), nullable=False),
        sa.Column('destination_counter_id', sa.Uuid(), nullable=False),
        sa.Column('destination_box_id', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.String(255), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('transfer_date', sa.DateTime(), nullable=False),
        sa.Column('requested_by', sa.String(100), nullable=True),
        sa.Column('approved_by', sa.String(100), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.String(100), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.String(500), nullable=True),
        sa.Column('completed_by', sa.String(100), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', sa.String(100), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancellation_reason', sa.String(500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_stock_transfers'),
        sa.UniqueConstraint('transfer_number', name='uq_stock_transfers_transfer_number'),
        sa.ForeignKeyConstraint(['source_branch_id'], ['branches.id'], name='fk_stock_transfers_source_branch_id_branches'),
        sa.ForeignKeyConstraint(['source_counter_id'], ['counters.id'], name='fk_stock_transfers_source_counter_id_counters'),
        sa.ForeignKeyConstraint(['source_box_id'], ['boxes.id'], name='fk_stock_transfers_source_box_id_boxes'),
        sa.ForeignKeyConstraint(['destination_branch_id'], ['branches.id'], name='fk_stock_transfers_destination_branch_id_branches'),
        sa.ForeignKeyConstraint(['destination_counter_id'], ['counters.id'], name='fk_stock_transfers_destination_counter_id_counters'),
        sa.ForeignKeyConstraint(['destination_box_id'], ['boxes.id'], name='fk_stock_transfers_destination_box_id_boxes'),
    )
    op.create_index('ix_stock_transfers_status', 'stock_transfers', ['status'])
    op.create_index('ix_stock_transfers_source', 'stock_transfers', ['source_branch_id', 'source_counter_id'])
    op.create_index(
        'ix_stock_transfers_destination', 'stock_transfers',
        ['destination_branch_id', 'destination_counter_id'],
    )
    op.create_index('ix_stock_transfers_transfer_date', 'stock_transfers', ['transfer_date'])

    op.create_table(
        'stock_transfer_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('transfer_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('tag_code', sa.String(50), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(18, 2), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_stock_transfer_items'),
        sa.ForeignKeyConstraint(
            ['transfer_id'], ['stock_transfers.id'],
            name='fk_stock_transfer_items_transfer_id_stock_transfers', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_stock_transfer_items_product_id_products'),
    )
    op.create_index('ix_stock_transfer_items_transfer_id', 'stock_transfer_items', ['transfer_id'])
    op.create_index('ix_stock_transfer_items_product_id', 'stock_transfer_items', ['product_id'])
    op.create_index('ix_stock_transfer_items_tag_code', 'stock_transfer_items', ['tag_code'])

    op.create_table(
        'stock_reservations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('transfer_id', sa.Uuid(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_stock_reservations'),
        sa.UniqueConstraint('product_id', name='uq_stock_reservations_product_id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_stock_reservations_product_id_products'),
        sa.ForeignKeyConstraint(
            ['transfer_id'], ['stock_transfers.id'],
            name='fk_stock_reservations_transfer_id_stock_transfers', ondelete='CASCADE',
        ),
    )
    op.create_index('ix_stock_reservations_transfer_id', 'stock_reservations', ['transfer_id'])

    # ===========================================
    # LEDGER AND SNAPSHOTS
    # ===========================================

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('tag_code', sa.String(50), nullable=True),
        sa.Column('movement_type', movement_type, nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(18, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('branch_id', sa.Uuid(), nullable=False),
        sa.Column('counter_id', sa.Uuid(), nullable=False),
        sa.Column('box_id', sa.Uuid(), nullable=True),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('reference_number', sa.String(100), nullable=True),
        sa.Column('reference_type', sa.String(50), nullable=True),
        sa.Column('transfer_id', sa.Uuid(), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('movement_date', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_stock_movements'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_stock_movements_product_id_products'),
        sa.ForeignKeyConstraint(
            ['transfer_id'], ['stock_transfers.id'],
            name='fk_stock_movements_transfer_id_stock_transfers',
        ),
    )
    op.create_index(
        'ix_stock_movements_product_id_movement_date', 'stock_movements',
        ['product_id', 'movement_date'],
    )
    op.create_index('ix_stock_movements_branch_id', 'stock_movements', ['branch_id'])
    op.create_index('ix_stock_movements_counter_id', 'stock_movements', ['counter_id'])
    op.create_index('ix_stock_movements_category_id', 'stock_movements', ['category_id'])
    op.create_index('ix_stock_movements_transfer_id', 'stock_movements', ['transfer_id'])

    balance_columns = []
    for prefix in ('opening', 'added', 'sold', 'returned', 'transferred_in', 'transferred_out', 'closing'):
        balance_columns.append(sa.Column(f'{prefix}_quantity', sa.Integer(), nullable=False))
        balance_columns.append(sa.Column(f'{prefix}_value', sa.Numeric(18, 2), nullable=False))

    op.create_table(
        'daily_stock_balances',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('balance_date', sa.Date(), nullable=False),
        sa.Column('branch_id', sa.Uuid(), nullable=False),
        sa.Column('counter_id', sa.Uuid(), nullable=False),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('tag_code', sa.String(50), nullable=True),
        *balance_columns,
        sa.Column('movement_count', sa.Integer(), nullable=False),
        sa.Column('calculated_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_daily_stock_balances'),
        sa.UniqueConstraint('product_id', 'balance_date', name='uq_daily_stock_balances_product_id_balance_date'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_daily_stock_balances_product_id_products'),
    )
    op.create_index('ix_daily_stock_balances_balance_date', 'daily_stock_balances', ['balance_date'])
    op.create_index('ix_daily_stock_balances_branch_id', 'daily_stock_balances', ['branch_id'])
    op.create_index('ix_daily_stock_balances_counter_id', 'daily_stock_balances', ['counter_id'])
    op.create_index('ix_daily_stock_balances_category_id', 'daily_stock_balances', ['category_id'])


def downgrade() -> None:
    """Drop inventory tables."""
    op.drop_table('daily_stock_balances')
    op.drop_table('stock_movements')
    op.drop_table('stock_reservations')
    op.drop_table('stock_transfer_items')
    op.drop_table('stock_transfers')
    op.drop_table('tag_assignments')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('boxes')
    op.drop_table('counters')
    op.drop_table('branches')

    bind = op.get_bind()
    for enum_type in (transfer_status, transfer_type, movement_type, product_status):
        enum_type.drop(bind, checkfirst=True)
