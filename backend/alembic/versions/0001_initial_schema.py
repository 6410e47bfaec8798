"""initial_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Holdings: one row per (asset class, symbol-or-null)
    op.create_table(
        'holdings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('asset_class', sa.String(length=10), nullable=False),
        sa.Column('symbol', sa.String(length=16), nullable=True),
        sa.Column('quantity', sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_holdings_asset_class', 'holdings', ['asset_class'])
    op.create_index(
        'uq_holdings_class_symbol',
        'holdings',
        ['asset_class', sa.text("coalesce(symbol, '')")],
        unique=True,
    )

    op.create_table(
        'bond_details',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('holding_id', sa.Integer(), nullable=False),
        sa.Column('face_amount', sa.Numeric(precision=18, scale=6), nullable=False),
        sa.Column('issuer', sa.String(length=255), nullable=True),
        sa.Column('coupon_rate', sa.Numeric(precision=7, scale=4), nullable=True),
        sa.Column('maturity_date', sa.Date(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['holding_id'], ['holdings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('holding_id'),
    )

    # Market data caches
    op.create_table(
        'price_snapshots',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('symbol', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('price', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('change_percent', sa.Numeric(precision=8, scale=2), nullable=True),
        sa.Column('last_refreshed', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_price_snapshots_symbol', 'price_snapshots', ['symbol'], unique=True)
    op.create_index('ix_price_snapshots_last_refreshed', 'price_snapshots', ['last_refreshed'])

    op.create_table(
        'recommendation_snapshots',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('symbol', sa.String(length=16), nullable=False),
        sa.Column('period', sa.String(length=20), nullable=True),
        sa.Column('strong_buy', sa.Integer(), nullable=False),
        sa.Column('buy', sa.Integer(), nullable=False),
        sa.Column('hold', sa.Integer(), nullable=False),
        sa.Column('sell', sa.Integer(), nullable=False),
        sa.Column('strong_sell', sa.Integer(), nullable=False),
        sa.Column('last_refreshed', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_recommendation_snapshots_symbol', 'recommendation_snapshots', ['symbol'], unique=True
    )

    op.create_table(
        'market_list_entries',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('list_type', sa.String(length=20), nullable=False),
        sa.Column('rank', sa.Integer(), nullable=False),
        sa.Column('symbol', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('price', sa.Numeric(precision=14, scale=4), nullable=True),
        sa.Column('change', sa.Numeric(precision=14, scale=4), nullable=True),
        sa.Column('change_percent', sa.Numeric(precision=10, scale=4), nullable=True),
        sa.Column('volume', sa.BigInteger(), nullable=True),
        sa.Column('market_cap', sa.Numeric(precision=20, scale=2), nullable=True),
        sa.Column('fifty_two_week_range', sa.String(length=64), nullable=True),
        sa.Column('last_refreshed', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('list_type', 'symbol', name='uq_market_list_type_symbol'),
    )
    op.create_index('ix_market_list_entries_list_type', 'market_list_entries', ['list_type'])

    # Valuation history and latest totals
    op.create_table(
        'history_points',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('cash_value', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('stock_value', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('bond_value', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('other_value', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_history_points_date', 'history_points', ['date'], unique=True)

    op.create_table(
        'portfolio_state',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('total_value', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('gain_loss', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('gain_loss_percent', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'tracked_symbols',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('list_name', sa.String(length=20), nullable=False),
        sa.Column('symbol', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('list_name', 'symbol', name='uq_tracked_list_symbol'),
    )
    op.create_index('ix_tracked_symbols_list_name', 'tracked_symbols', ['list_name'])


def downgrade() -> None:
    op.drop_index('ix_tracked_symbols_list_name', table_name='tracked_symbols')
    op.drop_table('tracked_symbols')
    op.drop_table('portfolio_state')
    op.drop_index('ix_history_points_date', table_name='history_points')
    op.drop_table('history_points')
    op.drop_index('ix_market_list_entries_list_type', table_name='market_list_entries')
    op.drop_table('market_list_entries')
    op.drop_index('ix_recommendation_snapshots_symbol', table_name='recommendation_snapshots')
    op.drop_table('recommendation_snapshots')
    op.drop_index('ix_price_snapshots_last_refreshed', table_name='price_snapshots')
    op.drop_index('ix_price_snapshots_symbol', table_name='price_snapshots')
    op.drop_table('price_snapshots')
    op.drop_table('bond_details')
    op.drop_index('uq_holdings_class_symbol', table_name='holdings')
    op.drop_index('ix_holdings_asset_class', table_name='holdings')
    op.drop_table('holdings')
