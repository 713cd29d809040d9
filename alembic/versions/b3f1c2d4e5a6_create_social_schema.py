"""create users / posts / comments / notifications

Revision ID: b3f1c2d4e5a6
Revises:
Create Date: 2026-10-17 10:12:44.318207
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b3f1c2d4e5a6'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return (
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )


def _set_members(table: str, owner_table: str, constraint: str) -> None:
    # 集合欄位：一列一個成員，(owner, field, value) 唯一
    op.create_table(
        table,
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.String(length=24), nullable=False),
        sa.Column('field', sa.String(length=32), nullable=False),
        sa.Column('value', sa.String(length=24), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], [f'{owner_table}.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'field', 'value', name=constraint),
    )
    op.create_index(f'ix_{table}_owner_id', table, ['owner_id'])


def upgrade() -> None:
    """Upgrade schema."""
    # Step 1️⃣: users + denylist
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('username', sa.String(length=30), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=50), nullable=False),
        sa.Column('last_name', sa.String(length=50), nullable=False),
        sa.Column('bio', sa.String(length=200), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('password_updated_at', sa.BigInteger(), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )
    op.create_table(
        'user_tokens_denylist',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=24), nullable=False),
        sa.Column('token', sa.String(length=1024), nullable=False),
        sa.Column('expires_in', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'token', name='uq_user_tokens_denylist_token'),
    )
    op.create_index('ix_user_tokens_denylist_user_id', 'user_tokens_denylist', ['user_id'])
    op.create_index('ix_user_tokens_denylist_expires_in', 'user_tokens_denylist', ['expires_in'])
    _set_members('user_set_members', 'users', 'uq_user_set_members')

    # Step 2️⃣: posts / comments
    op.create_table(
        'posts',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('user_id', sa.String(length=24), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_posts_user_id', 'posts', ['user_id'])
    _set_members('post_set_members', 'posts', 'uq_post_set_members')

    op.create_table(
        'comments',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('user_id', sa.String(length=24), nullable=False),
        sa.Column('post_id', sa.String(length=24), nullable=False),
        sa.Column('reply_to', sa.String(length=24), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['post_id'], ['posts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reply_to'], ['comments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_comments_user_id', 'comments', ['user_id'])
    op.create_index('ix_comments_post_id', 'comments', ['post_id'])
    op.create_index('ix_comments_reply_to', 'comments', ['reply_to'])
    _set_members('comment_set_members', 'comments', 'uq_comment_set_members')

    # Step 3️⃣: notifications
    op.create_table(
        'notifications',
        sa.Column('id', sa.String(length=24), nullable=False),
        sa.Column('user_id', sa.String(length=24), nullable=False),
        sa.Column('content', sa.String(length=512), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('action_metadata', sa.JSON(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('post_id', sa.String(length=24), nullable=True),
        sa.Column('comment_id', sa.String(length=24), nullable=True),
        sa.Column('following_id', sa.String(length=24), nullable=True),
        sa.Column('follower_username', sa.String(length=30), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    for column in ('user_id', 'action', 'post_id', 'comment_id', 'following_id', 'follower_username'):
        op.create_index(f'ix_notifications_{column}', 'notifications', [column])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('notifications')
    op.drop_table('comment_set_members')
    op.drop_table('comments')
    op.drop_table('post_set_members')
    op.drop_table('posts')
    op.drop_table('user_set_members')
    op.drop_table('user_tokens_denylist')
    op.drop_table('users')
