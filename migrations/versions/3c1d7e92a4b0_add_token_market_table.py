"""Add token_market table

Revision ID: 3c1d7e92a4b0
Revises:
Create Date: 2026-10-17 10:12:44.318207

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1d7e92a4b0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('token_market',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('token', sa.String(length=20), nullable=False),
        sa.Column('price_usdt', sa.Numeric(precision=20, scale=8), nullable=False),
        sa.Column('price_change_24h', sa.Numeric(precision=10, scale=4), nullable=False),
        sa.Column('price_change_24h_abs', sa.Numeric(precision=20, scale=8), nullable=False),
        sa.Column('volume_24h', sa.Numeric(precision=30, scale=8), nullable=False),
        sa.Column('market_cap', sa.Numeric(precision=30, scale=8), nullable=False),
        sa.Column('last_updated', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_token_market_token', 'token_market', ['token'], unique=True)
    op.create_index('idx_token_market_last_updated', 'token_market', ['last_updated'])


def downgrade() -> None:
    op.drop_index('idx_token_market_last_updated', table_name='token_market')
    op.drop_index('ix_token_market_token', table_name='token_market')
    op.drop_table('token_market')
