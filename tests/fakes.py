"""Test doubles for the transport handle and the storage collaborator."""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from schemas.realtime import UnreadSnapshot


class FakeHandle:
    def __init__(self, live: bool = True, fail: bool = False, broken: bool = False):
        self.live = live
        self.fail = fail
        # broken handles raise on every liveness check
        self.broken = broken
        self.closed = False
        self.close_code: Optional[int] = None
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    @property
    def is_live(self) -> bool:
        if self.broken:
            raise RuntimeError("socket state unavailable")
        return self.live and not self.closed

    async def send(self, event: str, data: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("socket write failed")
        self.sent.append((event, data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [data for event, data in self.sent if event == name]


class StoreError(Exception):
    pass


class FakeStore:
    def __init__(
        self,
        now: Optional[datetime] = None,
        senders: Optional[Dict[int, List[int]]] = None,
        messages: Optional[Dict[Tuple[int, int], List[int]]] = None,
        snapshots: Optional[Dict[int, UnreadSnapshot]] = None,
        members: Optional[Dict[int, List[int]]] = None,
    ):
        self.now = now or datetime(2026, 1, 1, 12, 0, 0)
        # conversation_id -> sender ids in storage order
        self.senders = senders or {}
        # (conversation_id, sender_id) -> message ids authored by that sender
        self.messages = messages or {}
        self.snapshots = snapshots or {}
        self.members = members or {}
        self.available = True
        self.fail_on: set = set()
        self.fail_for_sender: set = set()
        self.calls: List[Tuple[str, tuple]] = []

    def _check(self, name: str, *args):
        self.calls.append((name, args))
        if name in self.fail_on:
            raise StoreError(f"{name} unavailable")

    async def current_time(self) -> datetime:
        self._check("current_time")
        return self.now

    async def fetch_message_senders(self, conversation_id: int, exclude_user_id: int) -> List[int]:
        self._check("fetch_message_senders", conversation_id, exclude_user_id)
        return [s for s in self.senders.get(conversation_id, []) if s != exclude_user_id]

    async def fetch_sender_message_ids(self, conversation_id: int, sender_id: int, message_ids: Sequence[int]) -> List[int]:
        self._check("fetch_sender_message_ids", conversation_id, sender_id, tuple(message_ids))
        if sender_id in self.fail_for_sender:
            raise StoreError(f"lookup failed for sender {sender_id}")
        owned = self.messages.get((conversation_id, sender_id), [])
        return [m for m in message_ids if m in owned]

    async def fetch_unread_summary(self, user_id: int) -> UnreadSnapshot:
        self._check("fetch_unread_summary", user_id)
        return self.snapshots.get(user_id, UnreadSnapshot())

    async def fetch_conversation_member_ids(self, conversation_id: int, exclude_user_id: int) -> List[int]:
        self._check("fetch_conversation_member_ids", conversation_id, exclude_user_id)
        return [m for m in self.members.get(conversation_id, []) if m != exclude_user_id]

    async def is_available(self) -> bool:
        return self.available
