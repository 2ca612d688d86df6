from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Outbound event names
CONNECTION_SUCCESS = "connection_success"
MESSAGE_READ_RECEIPT = "message_read_receipt"
UNREAD_COUNT_UPDATE = "unread_count_update"
FORCE_LOGOUT = "force_logout"
GLOBAL_FORCE_LOGOUT = "global_force_logout"
ANNOUNCEMENT_CREATED = "announcement_created"
NEW_MESSAGE = "new_message"
PONG = "pong"
ERROR = "error"

# Inbound signal names
MESSAGE_READ = "message_read"
PING = "ping"


class Envelope(BaseModel):
    """One frame on the socket, in either direction."""
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


# Inbound

class MessageReadSignal(BaseModel):
    conversation_id: int = Field(gt=0)
    reader_id: int = Field(gt=0)
    message_ids: Optional[List[int]] = None


# Outbound payloads

class ConnectionSuccess(BaseModel):
    user_id: int
    connected_at: datetime
    server_time: datetime


class Pong(BaseModel):
    timestamp: datetime
    server_time: datetime
    user_id: int


class ReadReceipt(BaseModel):
    conversation_id: int
    reader_id: int
    message_ids: Optional[List[int]] = None
    read_at: datetime


class ConversationSummary(BaseModel):
    conversation_id: int
    conversation_type: Optional[str] = None
    unread_count: int = 0
    last_message_id: Optional[int] = None
    last_message_content: Optional[str] = None
    last_message_time: Optional[datetime] = None

    class Config:
        from_attributes = True


class UnreadSnapshot(BaseModel):
    total_unread: int = 0
    # Most recently active conversation first
    conversations: List[ConversationSummary] = Field(default_factory=list)


class UnreadCountUpdate(BaseModel):
    user_id: int
    total_unread: int
    conversations: List[ConversationSummary]
    timestamp: datetime


class ForceLogoutNotice(BaseModel):
    user_id: int
    reason: str
    timestamp: datetime
    priority: str = "high"
    force: bool = True


class GlobalForceLogoutNotice(BaseModel):
    target_user_id: int
    reason: str
    timestamp: datetime


class ErrorEvent(BaseModel):
    message: str


# Domain events handed in by business code

class AnnouncementCreated(BaseModel):
    user_ids: List[int]
    announcement_id: int
    content: str
    type: str = "general"
    created_at: Optional[datetime] = None


class MessageSent(BaseModel):
    conversation_id: int
    message_id: int
    sender_id: int
    content: Optional[str] = None
    message_type: str = "text"
    created_at: Optional[datetime] = None


# HTTP bodies

class NotifyRequest(BaseModel):
    event: str = Field(min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class ForceLogoutRequest(BaseModel):
    reason: Optional[str] = None


class DispatchOutcome(BaseModel):
    user_id: int
    event: str
    status: str
    delivered: bool


class AnnouncementOutcome(BaseModel):
    recipients: int
    delivered: int


class PresenceEntry(BaseModel):
    user_id: int
    is_live: bool


class PresenceOut(BaseModel):
    online: int
    dedup_records: int
    connections: List[PresenceEntry]
