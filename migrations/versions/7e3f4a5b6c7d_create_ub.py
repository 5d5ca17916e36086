"""create ub table

Revision ID: 7e3f4a5b6c7d
Revises: 6d2e3f4a5b6c
Create Date: 2026-09-30
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7e3f4a5b6c7d'
down_revision: Union[str, None] = '6d2e3f4a5b6c'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'ub',
        sa.Column('time', sa.Text(), nullable=False),
        sa.Column('channel', sa.BigInteger(), nullable=False),
        sa.Column('kind', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('channel', 'kind'),
        sa.UniqueConstraint('channel', 'kind')
    )
    op.create_index('ub_channel_kind_idx', 'ub', ['channel', 'kind'])


def downgrade() -> None:
    op.drop_index('ub_channel_kind_idx', table_name='ub')
    op.drop_table('ub')
