"""initial squares schema

Revision ID: 5c2e9a71d0b3
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2e9a71d0b3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'admin',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_admin_email', 'admin', ['email'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('auth_token', sa.String(length=64), nullable=False),
        sa.Column('banned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_player_auth_token', 'player', ['auth_token'], unique=True)

    op.create_table(
        'pool',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('admin_id', sa.Integer(), sa.ForeignKey('admin.id'), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('sport', sa.String(length=16), nullable=False),
        sa.Column('away_team', sa.String(length=50), nullable=False),
        sa.Column('home_team', sa.String(length=50), nullable=False),
        sa.Column('game_label', sa.String(length=50), nullable=True),
        sa.Column('denomination', sa.Integer(), nullable=False),
        sa.Column('payout_structure', sa.String(length=32), nullable=False),
        sa.Column('tip_pct', sa.Integer(), nullable=False),
        sa.Column('max_per_player', sa.Integer(), nullable=False),
        sa.Column('approval_threshold', sa.Integer(), nullable=False),
        sa.Column('ot_rule', sa.String(length=16), nullable=False),
        sa.Column('col_digits', sa.JSON(none_as_null=True), nullable=True),
        sa.Column('row_digits', sa.JSON(none_as_null=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('locked_at', sa.DateTime(), nullable=True),
        sa.Column('external_game_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_pool_admin_id', 'pool', ['admin_id'])

    op.create_table(
        'square',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pool_id', sa.Integer(), sa.ForeignKey('pool.id'), nullable=False),
        sa.Column('row_idx', sa.Integer(), nullable=False),
        sa.Column('col_idx', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=True),
        sa.Column('claim_status', sa.String(length=16), nullable=False),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        sa.Column('requested_at', sa.DateTime(), nullable=True),
        sa.Column('released_at', sa.DateTime(), nullable=True),
        sa.Column('is_admin_override', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('pool_id', 'row_idx', 'col_idx', name='uq_square_pool_cell'),
    )
    op.create_index('ix_square_pool_id', 'square', ['pool_id'])
    op.create_index('ix_square_player_id', 'square', ['player_id'])

    op.create_table(
        'score',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pool_id', sa.Integer(), sa.ForeignKey('pool.id'), nullable=False),
        sa.Column('period_key', sa.String(length=10), nullable=False),
        sa.Column('period_label', sa.String(length=20), nullable=False),
        sa.Column('away_score', sa.Integer(), nullable=False),
        sa.Column('home_score', sa.Integer(), nullable=False),
        sa.Column('payout_pct', sa.Integer(), nullable=False),
        sa.Column('entered_at', sa.DateTime(), nullable=True),
        sa.Column('entered_by', sa.String(length=64), nullable=True),
        sa.UniqueConstraint('pool_id', 'period_key', name='uq_score_pool_period'),
    )
    op.create_index('ix_score_pool_id', 'score', ['pool_id'])

    op.create_table(
        'winner',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pool_id', sa.Integer(), sa.ForeignKey('pool.id'), nullable=False),
        sa.Column('period_key', sa.String(length=10), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('square_row', sa.Integer(), nullable=False),
        sa.Column('square_col', sa.Integer(), nullable=False),
        sa.Column('payout_amount', sa.Integer(), nullable=False),
        sa.Column('tip_suggestion', sa.Integer(), nullable=False),
        sa.Column('notified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notified_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('pool_id', 'period_key', name='uq_winner_pool_period'),
    )
    op.create_index('ix_winner_pool_id', 'winner', ['pool_id'])

    op.create_table(
        'ledger_entry',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('pool_id', sa.Integer(), sa.ForeignKey('pool.id'), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_ledger_entry_player_id', 'ledger_entry', ['player_id'])
    op.create_index('ix_ledger_entry_pool_id', 'ledger_entry', ['pool_id'])

    op.create_table(
        'audit_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pool_id', sa.Integer(), sa.ForeignKey('pool.id'), nullable=True),
        sa.Column('actor_type', sa.String(length=16), nullable=False),
        sa.Column('actor_id', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('detail', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_audit_log_pool_id', 'audit_log', ['pool_id'])

    op.create_table(
        'notification',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('pool_id', sa.Integer(), sa.ForeignKey('pool.id'), nullable=True),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notification_player_id', 'notification', ['player_id'])


def downgrade():
    for table in ('notification', 'audit_log', 'ledger_entry', 'winner', 'score', 'square', 'pool', 'player', 'admin'):
        op.drop_table(table)
