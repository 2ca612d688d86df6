"""messaging tables read by the realtime core

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

revision: str = 'a1b2c3d4e5f6'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    tables = set(inspect(bind).get_table_names())

    if 'users' not in tables:
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
            sa.Column('username', sa.String(length=50), nullable=False, unique=True),
            sa.Column('full_name', sa.String(length=100), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
            sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.Column('last_activity_at', sa.DateTime(), nullable=True),
        )
        op.create_index('ix_users_username', 'users', ['username'])

    if 'conversations' not in tables:
        op.create_table(
            'conversations',
            sa.Column('conversation_id', sa.Integer(), primary_key=True, nullable=False),
            sa.Column('conversation_type', sa.String(length=20), nullable=False, server_default='personal'),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index('ix_conversations_updated_at', 'conversations', ['updated_at'])

    if 'conversation_members' not in tables:
        op.create_table(
            'conversation_members',
            sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
            sa.Column('conversation_id', sa.Integer(), sa.ForeignKey('conversations.conversation_id', ondelete='CASCADE'), nullable=False),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('joined_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column('left_at', sa.DateTime(), nullable=True),
            sa.UniqueConstraint('conversation_id', 'user_id', name='uq_conversation_member'),
        )
        op.create_index('ix_conversation_members_conversation_id', 'conversation_members', ['conversation_id'])
        op.create_index('ix_conversation_members_user_id', 'conversation_members', ['user_id'])

    if 'messages' not in tables:
        op.create_table(
            'messages',
            sa.Column('message_id', sa.Integer(), primary_key=True, nullable=False),
            sa.Column('conversation_id', sa.Integer(), sa.ForeignKey('conversations.conversation_id', ondelete='CASCADE'), nullable=False),
            sa.Column('sender_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('content', sa.Text(), nullable=True),
            sa.Column('message_type', sa.Text(), nullable=False, server_default='text'),
            sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'])
        # read receipt fanout looks up distinct senders per conversation
        op.create_index('ix_messages_conversation_sender', 'messages', ['conversation_id', 'sender_id'])


def downgrade() -> None:
    op.drop_index('ix_messages_conversation_sender', table_name='messages')
    op.drop_index('ix_messages_conversation_id', table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_conversation_members_user_id', table_name='conversation_members')
    op.drop_index('ix_conversation_members_conversation_id', table_name='conversation_members')
    op.drop_table('conversation_members')
    op.drop_index('ix_conversations_updated_at', table_name='conversations')
    op.drop_table('conversations')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
