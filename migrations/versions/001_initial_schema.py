"""Initial schema - games, odds history, accounts, bets, ledger

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =========================================================================
    # GAMES & ODDS HISTORY
    # =========================================================================
    op.create_table(
        'games',
        sa.Column('id', sa.String(100), primary_key=True),
        sa.Column('sport_id', sa.String(50), nullable=False),
        sa.Column('sport_key', sa.String(100), nullable=True),
        sa.Column('league', sa.String(50), nullable=True),
        sa.Column('home_team', sa.String(200), nullable=False),
        sa.Column('away_team', sa.String(200), nullable=False),
        sa.Column('commence_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('home_score', sa.Integer(), nullable=True),
        sa.Column('away_score', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_games_sport_commence', 'games', ['sport_id', 'commence_time'])

    op.create_table(
        'odds_snapshots',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('game_id', sa.String(100), sa.ForeignKey('games.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sport_id', sa.String(50), nullable=False),
        sa.Column('bookmaker', sa.String(50), nullable=True),
        sa.Column('moneyline', postgresql.JSONB(), nullable=False),
        sa.Column('spread', postgresql.JSONB(), nullable=False),
        sa.Column('total', postgresql.JSONB(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='scheduled'),
        sa.Column('fetched_at', sa.Float(), nullable=False),
        sa.Column('recorded_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_odds_snapshots_game_fetched', 'odds_snapshots', ['game_id', 'fetched_at'])

    op.create_table(
        'odds_change_log',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('game_id', sa.String(100), sa.ForeignKey('games.id', ondelete='CASCADE'), nullable=False),
        sa.Column('market', sa.String(20), nullable=False),
        sa.Column('selection', sa.String(20), nullable=False),
        sa.Column('old_odds', sa.Integer(), nullable=False),
        sa.Column('new_odds', sa.Integer(), nullable=False),
        sa.Column('change_percent', sa.Float(), nullable=False),
        sa.Column('change_type', sa.String(20), nullable=False),
        sa.Column('fetched_at', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_odds_change_log_game', 'odds_change_log', ['game_id', 'created_at'])

    # =========================================================================
    # MONEY
    # =========================================================================
    op.create_table(
        'financial_accounts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False, unique=True),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('locked_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('available_balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('available_balance >= 0', name='ck_financial_accounts_available_non_negative'),
    )

    op.create_table(
        'bets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('financial_accounts.id'), nullable=False),
        sa.Column('bet_type', sa.String(20), nullable=False),
        sa.Column('selections', postgresql.JSONB(), nullable=False),
        sa.Column('total_stake', sa.Numeric(12, 2), nullable=False),
        sa.Column('potential_payout', sa.Numeric(12, 2), nullable=False),
        sa.Column('combined_odds', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('odds_snapshot', postgresql.JSONB(), nullable=False),
        sa.Column('placed_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_bets_user_placed', 'bets', ['user_id', 'placed_at'])

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('financial_accounts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('entry_type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('balance_after', sa.Numeric(12, 2), nullable=False),
        sa.Column('reference_id', sa.Uuid(), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_ledger_entries_account', 'ledger_entries', ['account_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_ledger_entries_account', table_name='ledger_entries')
    op.drop_table('ledger_entries')
    op.drop_index('ix_bets_user_placed', table_name='bets')
    op.drop_table('bets')
    op.drop_table('financial_accounts')
    op.drop_index('ix_odds_change_log_game', table_name='odds_change_log')
    op.drop_table('odds_change_log')
    op.drop_index('ix_odds_snapshots_game_fetched', table_name='odds_snapshots')
    op.drop_table('odds_snapshots')
    op.drop_index('ix_games_sport_commence', table_name='games')
    op.drop_table('games')
