"""Initial tables

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

sport_type = sa.Enum('FOOTBALL', 'HOCKEY', 'F1', 'OTHER', name='sporttype')
sync_type = sa.Enum('manual', 'scheduled', name='synctype')
sync_log_status = sa.Enum('started', 'completed', 'failed', name='synclogstatus')


def upgrade() -> None:
    # Games
    op.create_table(
        'games',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('game_key', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sport_type', sport_type, server_default='OTHER', nullable=False),
        sa.Column('subsite_key', sa.String(length=100), server_default='aftonbladet', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('current_round', sa.Integer(), server_default='1', nullable=True),
        sa.Column('total_rounds', sa.Integer(), nullable=True),
        sa.Column('round_state', sa.String(length=32), nullable=True),
        sa.Column('next_trade_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_round_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('current_round_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sync_interval_minutes', sa.Integer(), server_default='60', nullable=False),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('swush_game_id', sa.Integer(), nullable=True),
        sa.Column('game_url', sa.Text(), nullable=True),
        sa.Column('users_total', sa.Integer(), server_default='0', nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'sync_interval_minutes >= 5 AND sync_interval_minutes <= 1440',
            name='ck_games_sync_interval_range',
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_games_game_key', 'games', ['game_key'], unique=True)
    op.create_index('ix_games_is_active', 'games', ['is_active'])

    # Elements
    op.create_table(
        'elements',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('game_id', sa.Integer(), nullable=False),
        sa.Column('element_id', sa.Integer(), nullable=False),
        sa.Column('short_name', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('team_name', sa.String(length=255), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('popularity', sa.Float(), nullable=True),
        sa.Column('trend', sa.Integer(), nullable=True),
        sa.Column('growth', sa.Integer(), nullable=True),
        sa.Column('total_growth', sa.Integer(), nullable=True),
        sa.Column('value', sa.Integer(), nullable=True),
        sa.Column('is_injured', sa.Boolean(), nullable=True),
        sa.Column('is_suspended', sa.Boolean(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['game_id'], ['games.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('game_id', 'element_id', name='uq_elements_game_element')
    )
    op.create_index('ix_elements_game_id', 'elements', ['game_id'])
    op.create_index('ix_elements_element_id', 'elements', ['element_id'])
    op.create_index('ix_elements_trend', 'elements', ['trend'])

    # User game stats
    op.create_table(
        'user_game_stats',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('game_id', sa.Integer(), nullable=False),
        sa.Column('swush_user_id', sa.Integer(), nullable=False),
        sa.Column('team_name', sa.String(length=255), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('round_score', sa.Integer(), nullable=True),
        sa.Column('round_rank', sa.Integer(), nullable=True),
        sa.Column('round_jump', sa.Integer(), nullable=True),
        sa.Column('injured_count', sa.Integer(), nullable=True),
        sa.Column('suspended_count', sa.Integer(), nullable=True),
        sa.Column('lineup_element_ids', postgresql.ARRAY(sa.Integer()), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['game_id'], ['games.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id', 'game_id', name='uq_user_game_stats_external_game')
    )
    op.create_index('ix_user_game_stats_external_id', 'user_game_stats', ['external_id'])
    op.create_index('ix_user_game_stats_game_id', 'user_game_stats', ['game_id'])

    # Sync logs
    op.create_table(
        'sync_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('game_id', sa.Integer(), nullable=False),
        sa.Column('sync_type', sync_type, server_default='manual', nullable=False),
        sa.Column('status', sync_log_status, server_default='started', nullable=False),
        sa.Column('users_synced', sa.Integer(), nullable=True),
        sa.Column('elements_synced', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['game_id'], ['games.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_sync_logs_game_id', 'sync_logs', ['game_id'])
    op.create_index('ix_sync_logs_started_at', 'sync_logs', ['started_at'])

    # API budget (one row per UTC day)
    op.create_table(
        'api_budget',
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('date')
    )


def downgrade() -> None:
    op.drop_table('api_budget')
    op.drop_index('ix_sync_logs_started_at', table_name='sync_logs')
    op.drop_index('ix_sync_logs_game_id', table_name='sync_logs')
    op.drop_table('sync_logs')
    op.drop_index('ix_user_game_stats_game_id', table_name='user_game_stats')
    op.drop_index('ix_user_game_stats_external_id', table_name='user_game_stats')
    op.drop_table('user_game_stats')
    op.drop_index('ix_elements_trend', table_name='elements')
    op.drop_index('ix_elements_element_id', table_name='elements')
    op.drop_index('ix_elements_game_id', table_name='elements')
    op.drop_table('elements')
    op.drop_index('ix_games_is_active', table_name='games')
    op.drop_index('ix_games_game_key', table_name='games')
    op.drop_table('games')
    sync_log_status.drop(op.get_bind(), checkfirst=True)
    sync_type.drop(op.get_bind(), checkfirst=True)
    sport_type.drop(op.get_bind(), checkfirst=True)
