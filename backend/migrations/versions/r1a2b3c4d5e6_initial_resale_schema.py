"""initial resale schema

Revision ID: r1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the purchasing hierarchy and the audit ledger:
- stores: shops goods are bought from
- purchase_sessions: trips carrying shared (common) costs
- store_purchases: one store visit within a session
- items: individual units, carrying the derived allocated_cost
- ledger_events: append-only audit records
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'r1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # stores
    # ============================================================================
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('store_type', sa.String(length=16), nullable=False),
        sa.Column('prefecture', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stores_type_name', 'stores', ['store_type', 'name'])

    # ============================================================================
    # purchase_sessions: common costs are NULL until entered (treated as 0)
    # ============================================================================
    op.create_table(
        'purchase_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('session_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('transportation_cost', sa.Integer(), nullable=True),
        sa.Column('transfer_fee', sa.Integer(), nullable=True),
        sa.Column('agency_fee', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_sessions_session_date', 'purchase_sessions', ['session_date'])
    op.create_index('ix_purchase_sessions_status_date', 'purchase_sessions', ['status', 'session_date'])

    # ============================================================================
    # store_purchases
    # ============================================================================
    op.create_table(
        'store_purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('purchase_date', sa.Date(), nullable=True),
        sa.Column('product_amount', sa.Integer(), nullable=True),
        sa.Column('shipping_cost', sa.Integer(), nullable=True),
        sa.Column('commission_fee', sa.Integer(), nullable=True),
        sa.Column('item_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('price_input_mode', sa.String(length=16), nullable=False, server_default='individual'),
        sa.Column('payment_notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['session_id'], ['purchase_sessions.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_store_purchases_session_id', 'store_purchases', ['session_id'])
    op.create_index('ix_store_purchases_store_id', 'store_purchases', ['store_id'])
    op.create_index('ix_store_purchases_session', 'store_purchases', ['session_id', 'id'])

    # ============================================================================
    # items: allocated_cost is written only by the allocation recompute
    # ============================================================================
    op.create_table(
        'items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_purchase_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('brand', sa.String(length=120), nullable=True),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('size', sa.String(length=32), nullable=True),
        sa.Column('color', sa.String(length=64), nullable=True),
        sa.Column('condition', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('purchase_cost', sa.Integer(), nullable=True),
        sa.Column('allocated_cost', sa.Integer(), nullable=True),
        sa.Column('initial_price', sa.Integer(), nullable=True),
        sa.Column('current_price', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='in_stock'),
        sa.Column('listed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sold_price', sa.Integer(), nullable=True),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sale_shipping_cost', sa.Integer(), nullable=True),
        sa.Column('platform_fee', sa.Integer(), nullable=True),
        sa.Column('cost_at_sale', sa.Integer(), nullable=True),
        sa.Column('net_profit', sa.Integer(), nullable=True),
        sa.Column('hold_reason', sa.String(length=255), nullable=True),
        sa.Column('held_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('discard_reason', sa.String(length=255), nullable=True),
        sa.Column('discarded_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['store_purchase_id'], ['store_purchases.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_items_store_purchase_id', 'items', ['store_purchase_id'])
    op.create_index('ix_items_status', 'items', ['status'])
    op.create_index('ix_items_store_purchase_status', 'items', ['store_purchase_id', 'status'])

    # ============================================================================
    # ledger_events: append-only
    # ============================================================================
    op.create_table(
        'ledger_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['purchase_sessions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ledger_events_session_id', 'ledger_events', ['session_id'])
    op.create_index('ix_ledger_events_event_type', 'ledger_events', ['event_type'])
    op.create_index('ix_ledger_events_session_occurred', 'ledger_events', ['session_id', 'occurred_at'])


def downgrade():
    op.drop_table('ledger_events')
    op.drop_table('items')
    op.drop_table('store_purchases')
    op.drop_table('purchase_sessions')
    op.drop_table('stores')
