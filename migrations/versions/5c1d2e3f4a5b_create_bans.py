"""create bans table

Revision ID: 5c1d2e3f4a5b
Revises:
Create Date: 2026-09-28
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1d2e3f4a5b'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'bans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Text(), nullable=False),
        sa.Column('guild_id', sa.Text(), nullable=False),
        sa.Column('unbanned', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('start_time', sa.DateTime(), nullable=False),
        sa.Column('end_time', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    # The sweep scans active bans by expiry
    op.create_index('ix_bans_unbanned_end_time', 'bans', ['unbanned', 'end_time'])


def downgrade() -> None:
    op.drop_index('ix_bans_unbanned_end_time', table_name='bans')
    op.drop_table('bans')
