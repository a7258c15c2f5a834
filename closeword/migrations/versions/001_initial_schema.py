"""Create dictionary, rooms, room_players and guesses tables.

Revision ID: initial_001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from closeword.migrations.util import get_uuid_type, get_json_type


# revision identifiers, used by Alembic.
revision: str = "initial_001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the game tables."""
    uuid_type = get_uuid_type()

    # dictionary - read-only at request time, filled by an offline seeding job
    op.create_table(
        'dictionary',
        sa.Column('entry_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('word', sa.String(64), nullable=False),
        sa.Column('embedding', get_json_type(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('entry_id'),
        sa.UniqueConstraint('word', name='uq_dictionary_word'),
    )

    op.create_table(
        'rooms',
        sa.Column('room_id', uuid_type, nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='waiting'),
        sa.Column('game_mode', sa.String(20), nullable=False, server_default='local'),
        sa.Column('secret_word_id', sa.Integer(), nullable=True),
        sa.Column('game_day', sa.Integer(), nullable=True),
        sa.Column('winner_id', sa.String(64), nullable=True),
        sa.Column('revealed_word', sa.String(64), nullable=True),
        sa.Column('parent_room_id', uuid_type, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('room_id'),
        sa.ForeignKeyConstraint(['secret_word_id'], ['dictionary.entry_id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['parent_room_id'], ['rooms.room_id'], ondelete='SET NULL'),
    )
    op.create_index('ix_rooms_status_last_activity', 'rooms', ['status', 'last_activity_at'])

    op.create_table(
        'room_players',
        sa.Column('room_id', uuid_type, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('nickname', sa.String(32), nullable=False),
        sa.Column('is_host', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('room_id', 'user_id'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.room_id'], ondelete='CASCADE'),
    )

    op.create_table(
        'guesses',
        sa.Column('guess_id', uuid_type, nullable=False),
        sa.Column('room_id', uuid_type, nullable=False),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('word', sa.String(64), nullable=False),
        sa.Column('rank', sa.Integer(), nullable=False),
        sa.Column('is_revealed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('guess_id'),
        sa.ForeignKeyConstraint(['room_id'], ['rooms.room_id'], ondelete='CASCADE'),
        sa.CheckConstraint('rank >= 1', name='ck_guesses_rank_positive'),
    )
    op.create_index('ix_guesses_room_word', 'guesses', ['room_id', 'word'])
    op.create_index('ix_guesses_room_created', 'guesses', ['room_id', 'created_at'])


def downgrade() -> None:
    """Drop the game tables."""
    op.drop_index('ix_guesses_room_created', table_name='guesses')
    op.drop_index('ix_guesses_room_word', table_name='guesses')
    op.drop_table('guesses')
    op.drop_table('room_players')
    op.drop_index('ix_rooms_status_last_activity', table_name='rooms')
    op.drop_table('rooms')
    op.drop_table('dictionary')
