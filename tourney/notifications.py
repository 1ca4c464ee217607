import json
import logging
from typing import Dict, Iterable, List, Tuple

from werkzeug.exceptions import Forbidden, NotFound

from shared.events import Event, EventType
from shared.pubsub import EventBus
from .models import db, Notification

logger = logging.getLogger(__name__)


class NotificationType:
    ORGANIZATION_JOINED = 'organizationJoined'
    TEAM_INVITE = 'teamInvite'
    TEAM_UPDATE = 'teamUpdate'
    REGISTRATION_CONFIRMED = 'registrationConfirmed'
    PAYMENT_CONFIRMED = 'paymentConfirmed'


class NotificationCenter:
    """Stores per-user notifications and pushes them to live listeners."""

    def __init__(self, events: EventBus):
        self.events = events

    def notify(self, user_id: int, type: str, payload: dict = None) -> Notification:
        notification = Notification(user_id=user_id, type=type, payload=payload or {}, delivered=False)
        db.session.add(notification)
        db.session.commit()

        self.events.publish_user_notification(user_id, json.dumps(notification.to_dict()))
        return notification

    def mark_read(self, caller_id: int, notification_id: int) -> Notification:
        notification = db.session.get(Notification, notification_id)
        if not notification:
            raise NotFound('Notification not found')
        if notification.user_id != caller_id:
            raise Forbidden('Not authorized to update this notification')

        notification.delivered = True
        db.session.commit()
        return notification

    def list_for_user(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        query = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            query = query.filter_by(delivered=False)
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()

    def unread_count(self, user_id: int) -> int:
        return Notification.query.filter_by(user_id=user_id, delivered=False).count()


def _message(event: Event) -> str:
    data = event.data
    team = data.get('team_name')
    messages = {
        EventType.ORGANIZATION_JOINED: f"You joined {data.get('organization_name')} as {data.get('role')}",
        EventType.TEAM_INVITE_SENT: f"You have been invited to join team {team}",
        EventType.TEAM_INVITE_ACCEPTED: f"A player accepted the invitation to team {team}",
        EventType.TEAM_INVITE_REJECTED: f"A player declined the invitation to team {team}",
        EventType.TEAM_MEMBER_REMOVED: f"You have been removed from team {team}",
        EventType.TEAM_MEMBER_LEFT: f"A member left team {team}",
        EventType.REGISTRATION_CONFIRMED: "Your tournament registration is confirmed",
        EventType.PAYMENT_CONFIRMED: "Payment received for your tournament registration",
    }
    return messages.get(event.type, '')


class NotificationFanout:
    """
    Event consumer translating lifecycle events into notifications.

    Each rule names the notification type and the event fields holding the
    recipients (a single id or a list of ids).
    """

    RULES: Dict[EventType, Tuple[str, Tuple[str, ...]]] = {
        EventType.ORGANIZATION_JOINED: (NotificationType.ORGANIZATION_JOINED, ('user_id',)),
        EventType.TEAM_INVITE_SENT: (NotificationType.TEAM_INVITE, ('user_id',)),
        EventType.TEAM_INVITE_ACCEPTED: (NotificationType.TEAM_UPDATE, ('captain_id',)),
        EventType.TEAM_INVITE_REJECTED: (NotificationType.TEAM_UPDATE, ('captain_id',)),
        EventType.TEAM_MEMBER_REMOVED: (NotificationType.TEAM_UPDATE, ('user_id',)),
        EventType.TEAM_MEMBER_LEFT: (NotificationType.TEAM_UPDATE, ('captain_id',)),
        EventType.REGISTRATION_CONFIRMED: (NotificationType.REGISTRATION_CONFIRMED, ('participant_ids',)),
        EventType.PAYMENT_CONFIRMED: (NotificationType.PAYMENT_CONFIRMED, ('participant_ids',)),
    }

    def __init__(self, center: NotificationCenter):
        self.center = center

    def register(self, bus: EventBus) -> 'NotificationFanout':
        for event_type in self.RULES:
            bus.subscribe(event_type, self.handle)
        return self

    @staticmethod
    def recipients(event: Event, keys: Iterable[str]) -> List[int]:
        seen = []
        for key in keys:
            value = event.data.get(key)
            ids = value if isinstance(value, (list, tuple)) else [value]
            for user_id in ids:
                if user_id is not None and user_id not in seen:
                    seen.append(user_id)
        return seen

    def handle(self, event: Event) -> List[Notification]:
        rule = self.RULES.get(event.type)
        if rule is None:
            return []
        notification_type, keys = rule

        payload = dict(event.data)
        payload['event'] = event.type.value
        payload['tournament_id'] = event.tournament_id
        payload['message'] = _message(event)

        created = []
        for user_id in self.recipients(event, keys):
            try:
                created.append(self.center.notify(user_id, notification_type, payload))
            except Exception:
                db.session.rollback()
                logger.exception(f"Could not notify user {user_id} of {event.type.value}")
        return created
