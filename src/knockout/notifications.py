"""
In-process notifications for state changes.

The service publishes an event after every successful mutation. Delivery
to browsers, sockets or anything else is up to the subscribers; a failing
subscriber is logged and never breaks the operation that published.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

TOURNAMENT_UPDATED = 'tournament_updated'
MATCH_UPDATED = 'match_updated'
MATCH_RESULT = 'match_result'

# action tags
CREATED = 'created'
UPDATED = 'updated'
RESULT_UPDATED = 'result_updated'
STATUS_CHANGED = 'status_changed'
DELETED = 'deleted'


class Event:
    def __init__(self, event_type, action, data, tournament_id=None, timestamp=None):
        self.type = event_type
        self.action = action
        self.data = data
        self.tournament_id = tournament_id
        self.timestamp = timestamp or datetime.now()

    def to_dict(self) -> Dict:
        return {
            'type': self.type,
            'action': self.action,
            'tournament_id': self.tournament_id,
            'data': self.data,
            'timestamp': self.timestamp.isoformat(),
        }

    def __repr__(self):
        return f"Event(type={self.type}, action={self.action}, tournament_id={self.tournament_id})"


class Notifier:
    def __init__(self):
        self._subscribers: List[tuple] = []

    def subscribe(self, callback: Callable[[Event], None], event_type: Optional[str] = None):
        """Register callback for one event type, or for all when event_type is None."""
        self._subscribers.append((event_type, callback))

    def unsubscribe(self, callback: Callable[[Event], None]):
        self._subscribers = [(t, cb) for t, cb in self._subscribers if cb is not callback]

    def publish(self, event: Event) -> Event:
        delivered = 0
        for event_type, callback in list(self._subscribers):
            if event_type is not None and event_type != event.type:
                continue
            try:
                callback(event)
                delivered += 1
            except Exception:
                logger.exception(f'Subscriber {callback!r} failed on {event!r}')
        logger.debug(f'Published {event!r} to {delivered} subscriber(s)')
        return event

    def tournament_updated(self, tournament, action: str) -> Event:
        return self.publish(Event(TOURNAMENT_UPDATED, action, tournament.to_dict(), tournament.id))

    def match_updated(self, match, action: str) -> Event:
        return self.publish(Event(MATCH_UPDATED, action, match.to_dict(), match.tournament_id))

    def match_result(self, match, outcome=None) -> Event:
        data = match.to_dict()
        if outcome is not None:
            data['advancement'] = outcome.to_dict()
        return self.publish(Event(MATCH_RESULT, RESULT_UPDATED, data, match.tournament_id))


class EventLog:
    """Subscriber that keeps every event it receives, newest last."""

    def __init__(self, limit: int = 1000):
        self.limit = limit
        self.events: List[Event] = []

    def __call__(self, event: Event):
        self.events.append(event)
        if len(self.events) > self.limit:
            del self.events[:-self.limit]

    def of_type(self, event_type: str) -> List[Event]:
        return [e for e in self.events if e.type == event_type]
