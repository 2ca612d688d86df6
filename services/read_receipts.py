from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
import logging

from schemas.realtime import MESSAGE_READ_RECEIPT, MessageReadSignal, ReadReceipt
from services.dispatcher import DeliveryStatus, DispatchResult, NotificationDispatcher
from services.store import NotificationStore

logger = logging.getLogger(__name__)


@dataclass
class FanoutResult:
    conversation_id: int
    reader_id: int
    read_at: Optional[datetime] = None
    receipts: List[DispatchResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def delivered_to(self) -> List[int]:
        return [r.user_id for r in self.receipts if r.delivered]

    def __bool__(self) -> bool:
        return not self.failed


class ReadReceiptFanout:
    """Turns one reader's message_read signal into one receipt per distinct sender."""

    def __init__(self, store: NotificationStore, dispatcher: NotificationDispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def process(self, signal: MessageReadSignal) -> FanoutResult:
        result = FanoutResult(conversation_id=signal.conversation_id, reader_id=signal.reader_id)
        try:
            result.read_at = await self.store.current_time()
            senders = await self.store.fetch_message_senders(signal.conversation_id, signal.reader_id)
        except Exception as e:
            logger.exception(
                "Read receipt lookup failed for conversation %s (reader %s)",
                signal.conversation_id, signal.reader_id,
            )
            result.error = str(e) or e.__class__.__name__
            return result

        if senders:
            logger.info(
                "Sending read receipts for conversation %s to %s senders",
                signal.conversation_id, len(senders),
            )
        for sender_id in senders:
            if sender_id == signal.reader_id:
                continue
            result.receipts.append(await self._send_receipt(signal, sender_id, result.read_at))
        return result

    async def _send_receipt(self, signal: MessageReadSignal, sender_id: int, read_at: datetime) -> DispatchResult:
        try:
            message_ids = None
            if signal.message_ids is not None:
                message_ids = await self.store.fetch_sender_message_ids(
                    signal.conversation_id, sender_id, signal.message_ids
                )
                if not message_ids:
                    return DispatchResult(sender_id, MESSAGE_READ_RECEIPT, DeliveryStatus.SKIPPED)
            receipt = ReadReceipt(
                conversation_id=signal.conversation_id,
                reader_id=signal.reader_id,
                message_ids=message_ids,
                read_at=read_at,
            )
            return await self.dispatcher.notify(sender_id, MESSAGE_READ_RECEIPT, receipt.model_dump(exclude_none=True))
        except Exception:
            logger.exception("Failed to send read receipt to sender %s", sender_id)
            return DispatchResult(sender_id, MESSAGE_READ_RECEIPT, DeliveryStatus.STORAGE_ERROR)
