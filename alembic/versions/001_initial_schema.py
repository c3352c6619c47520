"""Initial schema: fee tables and market snapshots.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Trading fees (%) per venue
    op.create_table(
        'exchange_trading_fees',
        sa.Column('venue', sa.String(32), nullable=False),
        sa.Column('fee_pct', sa.Float(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('venue')
    )

    # Withdrawal fees (asset units) and suspension flags
    op.create_table(
        'exchange_withdrawal_fees',
        sa.Column('venue', sa.String(32), nullable=False),
        sa.Column('asset', sa.String(20), nullable=False),
        sa.Column('fee', sa.Float(), nullable=False),
        sa.Column('suspended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('venue', 'asset')
    )

    # Price snapshots (last-resort fallback)
    op.create_table(
        'price_snapshots',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('venue', sa.String(32), nullable=False),
        sa.Column('asset', sa.String(20), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('source', sa.String(50), nullable=False),
        sa.Column('captured_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_price_snapshots_lookup', 'price_snapshots', ['venue', 'asset', 'captured_at'])

    # FX snapshots (last-resort fallback)
    op.create_table(
        'fx_snapshots',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('currency', sa.String(10), nullable=False),
        sa.Column('rate', sa.Float(), nullable=False),
        sa.Column('source', sa.String(50), nullable=False),
        sa.Column('captured_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_fx_snapshots_lookup', 'fx_snapshots', ['currency', 'captured_at'])


def downgrade() -> None:
    op.drop_index('ix_fx_snapshots_lookup', table_name='fx_snapshots')
    op.drop_table('fx_snapshots')
    op.drop_index('ix_price_snapshots_lookup', table_name='price_snapshots')
    op.drop_table('price_snapshots')
    op.drop_table('exchange_withdrawal_fees')
    op.drop_table('exchange_trading_fees')
