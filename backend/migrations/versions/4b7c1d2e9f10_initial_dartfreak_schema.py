"""initial dartfreak schema: users, friends, invites, remote matches, history

Revision ID: 4b7c1d2e9f10
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7c1d2e9f10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=64), nullable=True),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('total_wins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_losses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.Float(), nullable=True),
        sa.Column('last_seen_at', sa.Float(), nullable=True),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'friendship',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('requester_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('addressee_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.Float(), nullable=True),
        sa.Column('updated_at', sa.Float(), nullable=True),
        sa.UniqueConstraint('requester_id', 'addressee_id', name='uq_friendship_pair'),
    )
    op.create_index('ix_friendship_requester_id', 'friendship', ['requester_id'])
    op.create_index('ix_friendship_addressee_id', 'friendship', ['addressee_id'])

    op.create_table(
        'invite',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('inviter_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('claimed_by', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=True),
        sa.Column('claimed_at', sa.Float(), nullable=True),
        sa.Column('expires_at', sa.Float(), nullable=False),
    )
    op.create_index('ix_invite_token', 'invite', ['token'], unique=True)
    op.create_index('ix_invite_inviter_id', 'invite', ['inviter_id'])

    op.create_table(
        'remote_match',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_type', sa.String(length=16), nullable=False),
        sa.Column('match_format', sa.Integer(), nullable=False),
        sa.Column('challenger_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('receiver_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_player_id', sa.Integer(), nullable=True),
        sa.Column('challenger_joined', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('receiver_joined', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('challenge_expires_at', sa.Float(), nullable=True),
        sa.Column('join_window_expires_at', sa.Float(), nullable=True),
        sa.Column('current_leg', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('scores', sa.Text(), nullable=True),
        sa.Column('legs_won', sa.Text(), nullable=True),
        sa.Column('last_visit_payload', sa.Text(), nullable=True),
        sa.Column('winner_id', sa.Integer(), nullable=True),
        sa.Column('ended_at', sa.Float(), nullable=True),
        sa.Column('ended_by', sa.Integer(), nullable=True),
        sa.Column('ended_reason', sa.String(length=16), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=True),
        sa.Column('updated_at', sa.Float(), nullable=True),
    )
    op.create_index('ix_remote_match_challenger_id', 'remote_match', ['challenger_id'])
    op.create_index('ix_remote_match_receiver_id', 'remote_match', ['receiver_id'])
    op.create_index('ix_remote_match_status', 'remote_match', ['status'])

    op.create_table(
        'remote_match_lock',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('remote_match.id'), nullable=False),
        sa.Column('lock_status', sa.String(length=16), nullable=False),
        sa.Column('updated_at', sa.Float(), nullable=True),
    )
    op.create_index('ix_remote_match_lock_match_id', 'remote_match_lock', ['match_id'])

    op.create_table(
        'match_visit',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('remote_match.id'), nullable=False),
        sa.Column('visit_id', sa.String(length=64), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('leg', sa.Integer(), nullable=False),
        sa.Column('turn_index', sa.Integer(), nullable=False),
        sa.Column('darts', sa.Text(), nullable=False),
        sa.Column('score_before', sa.Integer(), nullable=False),
        sa.Column('score_after', sa.Integer(), nullable=False),
        sa.Column('is_bust', sa.Boolean(), nullable=False),
        sa.Column('is_finish', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.Float(), nullable=True),
        sa.UniqueConstraint('match_id', 'visit_id', name='uq_match_visit_id'),
    )
    op.create_index('ix_match_visit_match_id', 'match_visit', ['match_id'])

    op.create_table(
        'match_record',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_type', sa.String(length=32), nullable=False),
        sa.Column('game_name', sa.String(length=64), nullable=False),
        sa.Column('match_format', sa.Integer(), nullable=False),
        sa.Column('saved_by_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('winner_user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('winner_name', sa.String(length=64), nullable=True),
        sa.Column('started_at', sa.Float(), nullable=True),
        sa.Column('ended_at', sa.Float(), nullable=True),
        sa.Column('game_metadata', sa.Text(), nullable=True),
    )
    op.create_index('ix_match_record_saved_by_id', 'match_record', ['saved_by_id'])

    op.create_table(
        'match_participant',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_record_id', sa.Integer(), sa.ForeignKey('match_record.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=True),
        sa.Column('guest_name', sa.String(length=64), nullable=True),
        sa.Column('player_order', sa.Integer(), nullable=False),
        sa.Column('final_score', sa.Integer(), nullable=True),
        sa.Column('legs_won', sa.Integer(), nullable=True),
    )
    op.create_index('ix_match_participant_match_record_id', 'match_participant', ['match_record_id'])
    op.create_index('ix_match_participant_user_id', 'match_participant', ['user_id'])

    op.create_table(
        'match_throw',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_record_id', sa.Integer(), sa.ForeignKey('match_record.id'), nullable=False),
        sa.Column('player_order', sa.Integer(), nullable=False),
        sa.Column('turn_index', sa.Integer(), nullable=False),
        sa.Column('leg', sa.Integer(), nullable=False),
        sa.Column('darts', sa.Text(), nullable=False),
        sa.Column('score_before', sa.Integer(), nullable=False),
        sa.Column('score_after', sa.Integer(), nullable=False),
        sa.Column('is_bust', sa.Boolean(), nullable=False),
        sa.Column('game_metadata', sa.Text(), nullable=True),
    )
    op.create_index('ix_match_throw_match_record_id', 'match_throw', ['match_record_id'])


def downgrade():
    op.drop_table('match_throw')
    op.drop_table('match_participant')
    op.drop_table('match_record')
    op.drop_table('match_visit')
    op.drop_table('remote_match_lock')
    op.drop_table('remote_match')
    op.drop_table('invite')
    op.drop_table('friendship')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
