"""pool player roster

Revision ID: 8d41f0c2b7e5
Revises: 5c2e9a71d0b3
Create Date: 2026-10-19 12:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8d41f0c2b7e5'
down_revision = '5c2e9a71d0b3'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'pool_player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('pool_id', sa.Integer(), sa.ForeignKey('pool.id'), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('joined_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('pool_id', 'player_id', name='uq_pool_player'),
    )
    op.create_index('ix_pool_player_pool_id', 'pool_player', ['pool_id'])
    op.create_index('ix_pool_player_player_id', 'pool_player', ['player_id'])

    # Everyone already holding a square joins that pool's roster
    op.execute(
        "INSERT INTO pool_player (pool_id, player_id, paid, payment_status) "
        "SELECT DISTINCT pool_id, player_id, false, 'pending' FROM square WHERE player_id IS NOT NULL"
    )


def downgrade():
    op.drop_index('ix_pool_player_player_id', table_name='pool_player')
    op.drop_index('ix_pool_player_pool_id', table_name='pool_player')
    op.drop_table('pool_player')
