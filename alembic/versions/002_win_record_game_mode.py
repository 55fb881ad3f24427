"""add game_mode to win_records for team/FFA leaderboard columns

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 09:30:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Rows recorded before this revision all came from clan scans
    op.add_column(
        'win_records',
        sa.Column('game_mode', sa.String(10), nullable=False, server_default='team'),
    )


def downgrade() -> None:
    op.drop_column('win_records', 'game_mode')
