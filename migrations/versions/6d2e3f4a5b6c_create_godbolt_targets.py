"""create godbolt target tables

Revision ID: 6d2e3f4a5b6c
Revises: 5c1d2e3f4a5b
Create Date: 2026-09-28
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '6d2e3f4a5b6c'
down_revision: Union[str, None] = '5c1d2e3f4a5b'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'godbolt_targets',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('lang', sa.Text(), nullable=False),
        sa.Column('compiler_type', sa.Text(), nullable=False),
        sa.Column('semver', sa.Text(), nullable=False),
        sa.Column('instruction_set', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id', 'name')
    )
    op.create_table(
        'last_godbolt_update',
        sa.Column('id', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_update', sa.Integer(), nullable=False),
        sa.CheckConstraint('id = 0', name='ck_last_godbolt_update_single_row'),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    op.drop_table('last_godbolt_update')
    op.drop_table('godbolt_targets')
