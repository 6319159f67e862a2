"""Add memory retention fields

Revision ID: 002_memory_retention
Revises: 001_ledger_and_memory
Create Date: 2026-10-18 15:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '002_memory_retention'
down_revision: Union[str, None] = '001_ledger_and_memory'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add importance, storage detail and expiry to memory entries."""

    # Existing rows are treated as full, never-expiring entries
    op.add_column('memory_entries', sa.Column('importance', sa.Integer(), server_default='5', nullable=False))
    op.add_column('memory_entries', sa.Column('storage_type', sa.String(length=20), server_default='FULL', nullable=False))
    op.add_column('memory_entries', sa.Column('storage_cost', sa.Float(), server_default='0.0', nullable=False))
    op.add_column('memory_entries', sa.Column('key_points', sa.Text(), nullable=True))
    op.add_column('memory_entries', sa.Column('expires_at', sa.DateTime(), nullable=True))

    op.create_index(op.f('ix_memory_entries_expires_at'), 'memory_entries', ['expires_at'], unique=False)

    # Composite index for unexpired lookups per user
    op.create_index('ix_memory_user_expires', 'memory_entries', ['user_id', 'expires_at'], unique=False)


def downgrade() -> None:
    """Remove memory retention fields."""

    op.drop_index('ix_memory_user_expires', table_name='memory_entries')
    op.drop_index(op.f('ix_memory_entries_expires_at'), table_name='memory_entries')

    op.drop_column('memory_entries', 'expires_at')
    op.drop_column('memory_entries', 'key_points')
    op.drop_column('memory_entries', 'storage_cost')
    op.drop_column('memory_entries', 'storage_type')
    op.drop_column('memory_entries', 'importance')
