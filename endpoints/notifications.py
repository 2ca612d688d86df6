from fastapi import APIRouter, Depends, status

from hub import MESSAGE_SENT_EVENT, NotificationHub, get_hub
from schemas.realtime import (
    FORCE_LOGOUT, AnnouncementCreated, AnnouncementOutcome, DispatchOutcome,
    ForceLogoutRequest, MessageSent, NotifyRequest, PresenceEntry, PresenceOut,
)

router = APIRouter()


def _outcome(result, event: str) -> DispatchOutcome:
    return DispatchOutcome(
        user_id=result.user_id,
        event=event,
        status=result.status.value,
        delivered=result.delivered,
    )


@router.post("/users/{user_id}/notify", response_model=DispatchOutcome)
async def notify_user(user_id: int, body: NotifyRequest, hub: NotificationHub = Depends(get_hub)):
    """Push an arbitrary business event to one user if they are online"""
    result = await hub.dispatcher.notify(user_id, body.event, body.data)
    return _outcome(result, body.event)


@router.post("/users/{user_id}/unread", response_model=DispatchOutcome)
async def refresh_unread(user_id: int, hub: NotificationHub = Depends(get_hub)):
    """Recompute and push the unread summary for a user"""
    result = await hub.unread.push_unread_update(user_id)
    return _outcome(result, result.event)


@router.post("/users/{user_id}/force-logout", response_model=DispatchOutcome)
async def force_logout_user(user_id: int, body: ForceLogoutRequest | None = None, hub: NotificationHub = Depends(get_hub)):
    """Terminate a user's live session (e.g. account locked)"""
    reason = body.reason if body else None
    result = await hub.force_logout.force_logout(user_id, reason)
    return _outcome(result, FORCE_LOGOUT)


@router.post("/announcements", response_model=AnnouncementOutcome, status_code=status.HTTP_202_ACCEPTED)
async def announce(body: AnnouncementCreated, hub: NotificationHub = Depends(get_hub)):
    """Notify every listed user who is currently online about a new announcement"""
    results = await hub.announce(body)
    return AnnouncementOutcome(recipients=len(results), delivered=sum(1 for r in results if r.delivered))


@router.post("/messages", status_code=status.HTTP_202_ACCEPTED)
async def message_sent(body: MessageSent, hub: NotificationHub = Depends(get_hub)):
    """Hand a freshly stored message to the realtime core"""
    handled = await hub.bus.publish(MESSAGE_SENT_EVENT, body.model_dump())
    return {"accepted": True, "handlers": handled}


@router.get("/presence", response_model=PresenceOut)
async def presence(hub: NotificationHub = Depends(get_hub)):
    snapshot = hub.registry.snapshot()
    return PresenceOut(
        online=sum(1 for _, live in snapshot if live),
        dedup_records=len(hub.dedup),
        connections=[PresenceEntry(user_id=uid, is_live=live) for uid, live in snapshot],
    )
