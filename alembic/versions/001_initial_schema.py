"""initial schema - scan jobs, sub-tasks, win records

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _task_columns():
    """Columns shared by the sub-task tables."""
    return [
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('job_id', sa.Integer(), sa.ForeignKey('scan_jobs.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # Create scan_jobs table (status and job_type as VARCHAR)
    op.create_table(
        'scan_jobs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('community_id', sa.String(32), nullable=False, index=True),
        sa.Column('channel_id', sa.String(32), nullable=False),
        sa.Column('clan_tag', sa.String(16), nullable=True),
        sa.Column('job_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('wins_recorded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_scan_jobs_status_created_at', 'scan_jobs', ['status', 'created_at'])

    # Create clan_session_tasks table
    op.create_table(
        'clan_session_tasks',
        *_task_columns(),
        sa.Column('game_id', sa.String(64), nullable=False),
        sa.Column('score', sa.Float(), nullable=False, server_default='0'),
        sa.UniqueConstraint('job_id', 'game_id', name='uq_clan_session_tasks_job_game'),
    )

    # Create player_tasks table
    op.create_table(
        'player_tasks',
        *_task_columns(),
        sa.Column('player_id', sa.String(64), nullable=False),
        sa.UniqueConstraint('job_id', 'player_id', name='uq_player_tasks_job_player'),
    )

    # Create ffa_game_tasks table
    op.create_table(
        'ffa_game_tasks',
        *_task_columns(),
        sa.Column('game_id', sa.String(64), nullable=False),
        sa.UniqueConstraint('job_id', 'game_id', name='uq_ffa_game_tasks_job_game'),
    )

    # Create win_records table
    op.create_table(
        'win_records',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('community_id', sa.String(32), nullable=False),
        sa.Column('username', sa.String(64), nullable=False),
        sa.Column('game_id', sa.String(64), nullable=False),
        sa.Column('score', sa.Float(), nullable=False, server_default='0'),
        sa.Column('game_start', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('community_id', 'username', 'game_id', name='uq_win_records_community_user_game'),
    )
    op.create_index('ix_win_records_community_game_start', 'win_records', ['community_id', 'game_start'])

    # Create player_registrations table
    op.create_table(
        'player_registrations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('community_id', sa.String(32), nullable=False, index=True),
        sa.Column('discord_user_id', sa.String(32), nullable=False),
        sa.Column('channel_id', sa.String(32), nullable=False),
        sa.Column('player_id', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.UniqueConstraint('community_id', 'discord_user_id', name='uq_player_registrations_community_user'),
    )

    # Create notification_deliveries table
    op.create_table(
        'notification_deliveries',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('community_id', sa.String(32), nullable=True, index=True),
        sa.Column('job_id', sa.Integer(), nullable=True, index=True),
        sa.Column('channel_id', sa.String(32), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), server_default='0'),
        sa.Column('response_code', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )


def downgrade() -> None:
    op.drop_table('notification_deliveries')
    op.drop_table('player_registrations')
    op.drop_index('ix_win_records_community_game_start', table_name='win_records')
    op.drop_table('win_records')
    op.drop_table('ffa_game_tasks')
    op.drop_table('player_tasks')
    op.drop_table('clan_session_tasks')
    op.drop_index('ix_scan_jobs_status_created_at', table_name='scan_jobs')
    op.drop_table('scan_jobs')
