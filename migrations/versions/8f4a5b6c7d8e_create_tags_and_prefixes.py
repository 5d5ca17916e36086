"""create tags and prefixes tables

Revision ID: 8f4a5b6c7d8e
Revises: 7e3f4a5b6c7d
Create Date: 2026-10-03
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8f4a5b6c7d8e'
down_revision: Union[str, None] = '7e3f4a5b6c7d'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'tags',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('guild_id', sa.BigInteger(), nullable=False),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('guild_id', 'key', name='uq_tags_guild_key')
    )
    op.create_index(op.f('ix_tags_guild_id'), 'tags', ['guild_id'])
    op.create_table(
        'prefixes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('string', sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'string', name='uq_prefixes_user_string')
    )
    op.create_index(op.f('ix_prefixes_user_id'), 'prefixes', ['user_id'])


def downgrade() -> None:
    op.drop_index(op.f('ix_prefixes_user_id'), table_name='prefixes')
    op.drop_table('prefixes')
    op.drop_index(op.f('ix_tags_guild_id'), table_name='tags')
    op.drop_table('tags')
