from enum import Enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List
import json


class EventType(str, Enum):
    # Membership
    ORGANIZATION_JOINED = "organization.joined"

    # Team lifecycle
    TEAM_CREATED = "team.created"
    TEAM_INVITE_SENT = "team.invite_sent"
    TEAM_INVITE_ACCEPTED = "team.invite_accepted"
    TEAM_INVITE_REJECTED = "team.invite_rejected"
    TEAM_MEMBER_REMOVED = "team.member_removed"
    TEAM_MEMBER_LEFT = "team.member_left"

    # Registration lifecycle
    REGISTRATION_CONFIRMED = "registration.confirmed"
    REGISTRATION_CANCELLED = "registration.cancelled"
    PAYMENT_CONFIRMED = "payment.confirmed"


@dataclass
class Event:
    type: EventType
    tournament_id: Optional[int] = None
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.utcnow().isoformat() + "Z"
        if self.data is None:
            self.data = {}

    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "tournament_id": self.tournament_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]) if data["type"] in [e.value for e in EventType] else data["type"],
            tournament_id=data.get("tournament_id"),
            timestamp=data.get("timestamp"),
            data=data.get("data", {})
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        return cls.from_dict(json.loads(json_str))


def organization_joined_event(org_id: int, org_name: str, user_id: int, role: str) -> Event:
    return Event(
        type=EventType.ORGANIZATION_JOINED,
        data={
            "organization_id": org_id,
            "organization_name": org_name,
            "user_id": user_id,
            "role": role
        }
    )


def team_event(event_type: EventType, team, user_id: int, **extra) -> Event:
    """Build a team lifecycle event. ``user_id`` is the member the event is about."""
    data = {
        "team_id": team.id,
        "team_name": team.name,
        "category_id": team.category_id,
        "captain_id": team.captain_id,
        "user_id": user_id,
    }
    data.update(extra)
    return Event(type=event_type, tournament_id=team.tournament_id, data=data)


def registration_event(event_type: EventType, registration, participant_ids: List[int], **extra) -> Event:
    data = {
        "registration_id": registration.id,
        "category_id": registration.category_id,
        "team_id": registration.team_id,
        "user_id": registration.user_id,
        "participant_ids": list(participant_ids),
    }
    data.update(extra)
    return Event(type=event_type, tournament_id=registration.tournament_id, data=data)
