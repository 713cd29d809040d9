"""add files table and user avatar

Revision ID: c4d2e6f8a1b3
Revises: b3f1c2d4e5a6
Create Date: 2026-10-18 09:41:07.552913
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c4d2e6f8a1b3'
down_revision: Union[str, Sequence[str], None] = 'b3f1c2d4e5a6'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'files',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('key', sa.String(length=512), nullable=False),
        sa.Column('url', sa.String(length=2048), nullable=False),
        sa.Column('content_type', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key', name='uq_files_key'),
    )

    # SQLite 也能跑：batch 模式重建 users
    with op.batch_alter_table('users') as batch:
        batch.add_column(sa.Column('avatar', sa.String(length=24), nullable=True))
        batch.add_column(sa.Column('avatar_updated_at', sa.BigInteger(), nullable=True))
        batch.create_foreign_key('fk_users_avatar_files', 'files', ['avatar'], ['id'], ondelete='SET NULL')


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('users') as batch:
        batch.drop_constraint('fk_users_avatar_files', type_='foreignkey')
        batch.drop_column('avatar_updated_at')
        batch.drop_column('avatar')
    op.drop_table('files')
