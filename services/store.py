"""Storage collaborator consumed by the realtime core.

The core only reads: who sent messages in a conversation, which message ids
belong to whom, unread aggregates, and the store's own clock. Read receipts
are stamped with current_time() so they agree with timestamps written by the
record store, which may run on a different host or time zone.
"""
from __future__ import annotations
from datetime import datetime
from typing import Callable, List, Protocol, Sequence

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import and_, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.conversation import Conversation, ConversationMember
from models.message import Message
from schemas.realtime import ConversationSummary, UnreadSnapshot


class NotificationStore(Protocol):
    async def current_time(self) -> datetime: ...
    async def fetch_message_senders(self, conversation_id: int, exclude_user_id: int) -> List[int]: ...
    async def fetch_sender_message_ids(self, conversation_id: int, sender_id: int, message_ids: Sequence[int]) -> List[int]: ...
    async def fetch_unread_summary(self, user_id: int) -> UnreadSnapshot: ...
    async def fetch_conversation_member_ids(self, conversation_id: int, exclude_user_id: int) -> List[int]: ...
    async def is_available(self) -> bool: ...


class SqlNotificationStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    async def _run(self, fn, *args):
        def _call():
            db = self.session_factory()
            try:
                return fn(db, *args)
            finally:
                db.close()
        return await run_in_threadpool(_call)

    async def current_time(self) -> datetime:
        return await self._run(_current_time)

    async def fetch_message_senders(self, conversation_id: int, exclude_user_id: int) -> List[int]:
        return await self._run(_message_senders, conversation_id, exclude_user_id)

    async def fetch_sender_message_ids(self, conversation_id: int, sender_id: int, message_ids: Sequence[int]) -> List[int]:
        if not message_ids:
            return []
        return await self._run(_sender_message_ids, conversation_id, sender_id, list(message_ids))

    async def fetch_unread_summary(self, user_id: int) -> UnreadSnapshot:
        return await self._run(_unread_summary, user_id)

    async def fetch_conversation_member_ids(self, conversation_id: int, exclude_user_id: int) -> List[int]:
        return await self._run(_member_ids, conversation_id, exclude_user_id)

    async def is_available(self) -> bool:
        try:
            await self._run(lambda db: db.execute(text("SELECT 1")))
        except SQLAlchemyError:
            return False
        return True


def _current_time(db: Session) -> datetime:
    value = db.scalar(select(func.now()))
    if isinstance(value, str):
        # SQLite hands CURRENT_TIMESTAMP back as text
        value = datetime.fromisoformat(value)
    return value


def _message_senders(db: Session, conversation_id: int, exclude_user_id: int) -> List[int]:
    rows = db.execute(
        select(Message.sender_id)
        .where(Message.conversation_id == conversation_id, Message.sender_id != exclude_user_id)
        .distinct()
        .order_by(Message.sender_id)
    ).scalars().all()
    return list(rows)


def _sender_message_ids(db: Session, conversation_id: int, sender_id: int, message_ids: List[int]) -> List[int]:
    rows = db.execute(
        select(Message.message_id)
        .where(
            Message.conversation_id == conversation_id,
            Message.sender_id == sender_id,
            Message.message_id.in_(message_ids),
        )
        .order_by(Message.message_id)
    ).scalars().all()
    return list(rows)


def _last_message(column):
    return (
        select(column)
        .where(Message.conversation_id == Conversation.conversation_id)
        .order_by(Message.created_at.desc(), Message.message_id.desc())
        .limit(1)
        .correlate(Conversation)
        .scalar_subquery()
    )


def _unread_summary(db: Session, user_id: int) -> UnreadSnapshot:
    total = db.scalar(
        select(func.count(Message.message_id))
        .select_from(Message)
        .join(ConversationMember, ConversationMember.conversation_id == Message.conversation_id)
        .where(
            ConversationMember.user_id == user_id,
            ConversationMember.left_at.is_(None),
            Message.sender_id != user_id,
            Message.is_read.is_(False),
        )
    ) or 0

    unread_count = (
        select(func.count(Message.message_id))
        .where(
            Message.conversation_id == Conversation.conversation_id,
            Message.sender_id != user_id,
            Message.is_read.is_(False),
        )
        .correlate(Conversation)
        .scalar_subquery()
    )
    rows = db.execute(
        select(
            Conversation.conversation_id,
            Conversation.conversation_type,
            unread_count.label("unread_count"),
            _last_message(Message.message_id).label("last_message_id"),
            _last_message(Message.content).label("last_message_content"),
            _last_message(Message.created_at).label("last_message_time"),
        )
        .select_from(Conversation)
        .join(ConversationMember, and_(
            ConversationMember.conversation_id == Conversation.conversation_id,
            ConversationMember.user_id == user_id,
        ))
        .where(ConversationMember.left_at.is_(None))
        .order_by(Conversation.updated_at.desc(), Conversation.conversation_id.desc())
    ).all()

    conversations = []
    for row in rows:
        last_time = row.last_message_time
        if isinstance(last_time, str):
            last_time = datetime.fromisoformat(last_time)
        conversations.append(ConversationSummary(
            conversation_id=row.conversation_id,
            conversation_type=row.conversation_type,
            unread_count=row.unread_count or 0,
            last_message_id=row.last_message_id,
            last_message_content=row.last_message_content,
            last_message_time=last_time,
        ))
    return UnreadSnapshot(total_unread=total, conversations=conversations)


def _member_ids(db: Session, conversation_id: int, exclude_user_id: int) -> List[int]:
    rows = db.execute(
        select(ConversationMember.user_id)
        .where(
            ConversationMember.conversation_id == conversation_id,
            ConversationMember.user_id != exclude_user_id,
            ConversationMember.left_at.is_(None),
        )
        .order_by(ConversationMember.user_id)
    ).scalars().all()
    return list(rows)
