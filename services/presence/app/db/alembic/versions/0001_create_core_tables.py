"""Create players, sessions and statistics tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

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
    op.create_table('players',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('identity_key', sa.Text(), nullable=False),
        sa.Column('username', sa.Text(), nullable=False),
        sa.Column('launcher_version', sa.Text(), nullable=True),
        sa.Column('first_seen', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=False),
        sa.Column('total_playtime', sa.Integer(), server_default='0', nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_players')),
        sa.UniqueConstraint('identity_key', name=op.f('uq_players_identity_key')),
        comment='Lifetime record of a player identity, accumulating playtime across sessions'
    )
    op.create_table('sessions',
        sa.Column('session_id', sa.String(length=36), nullable=False),
        sa.Column('player_id', sa.String(length=32), nullable=False),
        sa.Column('username', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), server_default='online', nullable=False),
        sa.Column('minecraft_version', sa.Text(), nullable=True),
        sa.Column('world_name', sa.Text(), nullable=True),
        sa.Column('server_address', sa.Text(), nullable=True),
        sa.Column('game_mode', sa.Text(), server_default='idle', nullable=True),
        sa.Column('connected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_update', sa.DateTime(timezone=True), nullable=False),
        sa.Column('privacy_show_username', sa.Boolean(), nullable=False),
        sa.Column('privacy_show_version', sa.Boolean(), nullable=False),
        sa.Column('privacy_show_world', sa.Boolean(), nullable=False),
        sa.Column('privacy_show_server', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(
            ['player_id'], ['players.id'],
            name=op.f('fk_sessions_player_id_players'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('session_id', name=op.f('pk_sessions')),
        comment='Currently connected launcher sessions'
    )
    op.create_index('idx_sessions_last_update', 'sessions', ['last_update'], unique=False)
    op.create_table('statistics',
        sa.Column('metric', sa.String(length=64), nullable=False),
        sa.Column('value', sa.Integer(), server_default='0', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('metric', name=op.f('pk_statistics'))
    )


def downgrade() -> None:
    op.drop_table('statistics')
    op.drop_index('idx_sessions_last_update', table_name='sessions')
    op.drop_table('sessions')
    op.drop_table('players')
