"""
Change notifications for the notification / reporting collaborators.

Every committed state change publishes a ChangeEvent (entity id + new state).
Subscriber failures are logged and never undo the committed change.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Awaitable, List, Optional, Dict, Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeEvent:
    entity_type: str  # business_account, lead, quote, order, credit
    entity_id: str
    state: str
    action: str
    actor_id: Optional[str] = None
    changes: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[ChangeEvent], Awaitable[None]]


class EventBus:
    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe():
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)
        return unsubscribe

    async def publish(self, event: ChangeEvent):
        for subscriber in list(self._subscribers):
            try:
                await subscriber(event)
            except Exception:
                logger.exception(
                    f"Event subscriber failed for {event.entity_type}:{event.entity_id} ({event.action})"
                )


class ActivityLogSubscriber:
    """Persists change events as an audit trail in the activity_log collection"""

    def __init__(self, store):
        self.store = store

    async def __call__(self, event: ChangeEvent):
        await self.store.insert("activity_log", {
            "activity_id": f"act_{uuid.uuid4().hex[:12]}",
            "record_type": event.entity_type,
            "record_id": event.entity_id,
            "action": event.action,
            "state": event.state,
            "changes": event.changes,
            "user_id": event.actor_id,
            "created_at": event.occurred_at.isoformat(),
        })
