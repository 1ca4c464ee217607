from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin

db = SQLAlchemy()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Role(str, Enum):
    SUPER_MANAGER = 'super_manager'
    MANAGER = 'manager'
    FOLLOWER = 'follower'


MANAGER_ROLES = (Role.SUPER_MANAGER.value, Role.MANAGER.value)


class EntryType(str, Enum):
    INDIVIDUAL = 'INDIVIDUAL'
    TEAM = 'TEAM'


class MemberStatus(str, Enum):
    INVITED = 'invited'
    ACCEPTED = 'accepted'


class RegistrationStatus(str, Enum):
    REGISTERED = 'registered'
    CANCELLED = 'cancelled'


@dataclass
class CategorySettings:
    """Typed view over a category's settings blob.

    ``team_size`` is the only key the lifecycle rules read; everything else is
    carried through untouched in ``extra``.
    """
    team_size: Optional[int] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'CategorySettings':
        data = dict(data or {})
        team_size = data.pop('teamSize', None)
        return cls(team_size=team_size, extra=data)

    def to_dict(self) -> Optional[dict]:
        data = dict(self.extra)
        if self.team_size is not None:
            data['teamSize'] = self.team_size
        return data or None

    def merged(self, incoming: Optional[dict] = None, team_size: Optional[int] = None) -> 'CategorySettings':
        """Shallow overlay of ``incoming`` on top of these settings, then ``team_size``."""
        combined = self.to_dict() or {}
        combined.update(incoming or {})
        result = CategorySettings.from_dict(combined)
        if team_size is not None:
            result.team_size = team_size
        return result


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    phone = db.Column(db.String(40), nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = db.relationship('OrgMembership', back_populates='user', cascade='all, delete-orphan')

    def get_id(self):
        """Return the user ID for Flask-Login session management."""
        return str(self.id)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'avatar_url': self.avatar_url,
            'created_at': _iso(self.created_at),
        }


class Game(db.Model):
    __tablename__ = 'games'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {'id': self.id, 'key': self.key, 'name': self.name}


class Organization(db.Model):
    __tablename__ = 'organizations'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False, index=True)
    default_game_id = db.Column(db.Integer, db.ForeignKey('games.id'), nullable=True)
    branding = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    memberships = db.relationship('OrgMembership', back_populates='organization', cascade='all, delete-orphan')
    tournaments = db.relationship('Tournament', back_populates='organization', cascade='all, delete-orphan')
    default_game = db.relationship('Game')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'default_game_id': self.default_game_id,
            'branding': self.branding,
            'created_at': _iso(self.created_at),
        }


class OrgMembership(db.Model):
    __tablename__ = 'org_memberships'

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=Role.FOLLOWER.value)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    organization = db.relationship('Organization', back_populates='memberships')
    user = db.relationship('User', back_populates='memberships')

    __table_args__ = (
        db.UniqueConstraint('org_id', 'user_id', name='unique_membership_per_org'),
    )

    def to_dict(self, include_org: bool = False):
        data = {
            'id': self.id,
            'org_id': self.org_id,
            'user_id': self.user_id,
            'role': self.role,
            'created_at': _iso(self.created_at),
        }
        if include_org:
            data['organization'] = self.organization.to_dict()
        return data


class Tournament(db.Model):
    __tablename__ = 'tournaments'

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey('organizations.id'), nullable=False, index=True)
    game_id = db.Column(db.Integer, db.ForeignKey('games.id'), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)

    # Scheduling hints, not used by the lifecycle rules
    reg_deadline = db.Column(db.DateTime, nullable=True)
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    courts_count = db.Column(db.Integer, nullable=True)
    match_duration_minutes = db.Column(db.Integer, nullable=True)
    buffer_minutes = db.Column(db.Integer, nullable=True)
    scoring_mode = db.Column(db.String(50), nullable=True)
    settings = db.Column(db.JSON, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = db.relationship('Organization', back_populates='tournaments')
    game = db.relationship('Game')
    creator = db.relationship('User')
    categories = db.relationship('TournamentCategory', back_populates='tournament', cascade='all, delete-orphan',
                                 order_by='TournamentCategory.id')
    registrations = db.relationship('Registration', back_populates='tournament')
    matches = db.relationship('Match', back_populates='tournament')

    __table_args__ = (
        db.UniqueConstraint('org_id', 'slug', name='unique_tournament_slug_per_org'),
    )

    def to_dict(self, include_categories: bool = False):
        data = {
            'id': self.id,
            'org_id': self.org_id,
            'game_id': self.game_id,
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'reg_deadline': _iso(self.reg_deadline),
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'courts_count': self.courts_count,
            'match_duration_minutes': self.match_duration_minutes,
            'buffer_minutes': self.buffer_minutes,
            'scoring_mode': self.scoring_mode,
            'settings': self.settings,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
        }
        if include_categories:
            data['categories'] = [c.to_dict() for c in self.categories]
        return data


class TournamentCategory(db.Model):
    __tablename__ = 'tournament_categories'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    key = db.Column(db.String(100), nullable=False)
    entry_type = db.Column(db.String(20), nullable=False, default=EntryType.INDIVIDUAL.value)
    entry_limit = db.Column(db.Integer, nullable=True)
    reg_deadline = db.Column(db.DateTime, nullable=True)
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)
    courts_count = db.Column(db.Integer, nullable=True)
    match_duration_minutes = db.Column(db.Integer, nullable=True)
    buffer_minutes = db.Column(db.Integer, nullable=True)
    scoring_mode = db.Column(db.String(50), nullable=True)
    settings = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tournament = db.relationship('Tournament', back_populates='categories')
    registrations = db.relationship('Registration', back_populates='category')
    teams = db.relationship('Team', back_populates='category')

    __table_args__ = (
        db.UniqueConstraint('tournament_id', 'key', name='unique_category_key_per_tournament'),
    )

    @property
    def is_team(self) -> bool:
        return self.entry_type == EntryType.TEAM.value

    @property
    def settings_obj(self) -> CategorySettings:
        return CategorySettings.from_dict(self.settings)

    @property
    def team_size(self) -> Optional[int]:
        return self.settings_obj.team_size

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'name': self.name,
            'key': self.key,
            'entry_type': self.entry_type,
            'entry_limit': self.entry_limit,
            'team_size': self.team_size,
            'reg_deadline': _iso(self.reg_deadline),
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'courts_count': self.courts_count,
            'match_duration_minutes': self.match_duration_minutes,
            'buffer_minutes': self.buffer_minutes,
            'scoring_mode': self.scoring_mode,
            'settings': self.settings,
        }


class Team(db.Model):
    __tablename__ = 'teams'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey('tournament_categories.id'), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    captain_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tournament = db.relationship('Tournament')
    category = db.relationship('TournamentCategory', back_populates='teams')
    captain = db.relationship('User')
    members = db.relationship('TeamMember', back_populates='team', cascade='all, delete-orphan',
                              order_by='TeamMember.id')
    registrations = db.relationship('Registration', back_populates='team')

    __table_args__ = (
        db.UniqueConstraint('category_id', 'captain_id', name='unique_captain_per_category'),
    )

    @property
    def occupancy(self) -> int:
        """Captain plus invited and accepted members."""
        return len(self.members) + 1

    def accepted_member_ids(self):
        return [m.user_id for m in self.members if m.status == MemberStatus.ACCEPTED.value]

    def roster_ids(self):
        """Captain followed by accepted members."""
        return [self.captain_id] + self.accepted_member_ids()

    def to_dict(self, include_members: bool = True):
        data = {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'category_id': self.category_id,
            'name': self.name,
            'captain_id': self.captain_id,
            'created_at': _iso(self.created_at),
        }
        if include_members:
            data['members'] = [m.to_dict() for m in self.members]
        return data


class TeamMember(db.Model):
    __tablename__ = 'team_members'

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=MemberStatus.INVITED.value)
    invited_at = db.Column(db.DateTime, default=datetime.utcnow)
    joined_at = db.Column(db.DateTime, nullable=True)

    team = db.relationship('Team', back_populates='members')
    user = db.relationship('User')

    __table_args__ = (
        db.UniqueConstraint('team_id', 'user_id', name='unique_member_per_team'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'team_id': self.team_id,
            'user_id': self.user_id,
            'status': self.status,
            'invited_at': _iso(self.invited_at),
            'joined_at': _iso(self.joined_at),
        }


class Registration(db.Model):
    __tablename__ = 'registrations'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey('tournament_categories.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    team_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=True, index=True)
    status = db.Column(db.String(20), nullable=False, default=RegistrationStatus.REGISTERED.value)
    paid = db.Column(db.Boolean, nullable=False, default=False)
    payment_info = db.Column(db.JSON, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    tournament = db.relationship('Tournament', back_populates='registrations')
    category = db.relationship('TournamentCategory', back_populates='registrations')
    team = db.relationship('Team', back_populates='registrations')
    user = db.relationship('User')

    __table_args__ = (
        # At most one active registration per entrant and category
        db.Index(
            'unique_active_registration',
            'tournament_id', 'category_id', 'user_id',
            unique=True,
            sqlite_where=db.text("status = 'registered'"),
            postgresql_where=db.text("status = 'registered'"),
        ),
        # At most one active registration per team; NULL team ids never collide
        db.Index(
            'unique_active_team_registration',
            'team_id',
            unique=True,
            sqlite_where=db.text("status = 'registered'"),
            postgresql_where=db.text("status = 'registered'"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == RegistrationStatus.REGISTERED.value

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'category_id': self.category_id,
            'user_id': self.user_id,
            'team_id': self.team_id,
            'status': self.status,
            'paid': self.paid,
            'payment_info': self.payment_info,
            'paid_at': _iso(self.paid_at),
            'created_at': _iso(self.created_at),
        }


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False)
    payload = db.Column(db.JSON, nullable=True)
    delivered = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'type': self.type,
            'payload': self.payload,
            'delivered': self.delivered,
            'created_at': _iso(self.created_at),
        }


class Match(db.Model):
    __tablename__ = 'matches'

    id = db.Column(db.Integer, primary_key=True)
    tournament_id = db.Column(db.Integer, db.ForeignKey('tournaments.id'), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey('tournament_categories.id'), nullable=True)
    round_num = db.Column(db.Integer, nullable=True)

    team1_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=True)
    team2_id = db.Column(db.Integer, db.ForeignKey('teams.id'), nullable=True)
    team1_score = db.Column(db.Integer, nullable=True)
    team2_score = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(20), default='scheduled')  # scheduled, in_progress, finished, cancelled
    scheduled_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tournament = db.relationship('Tournament', back_populates='matches')
    team1 = db.relationship('Team', foreign_keys=[team1_id])
    team2 = db.relationship('Team', foreign_keys=[team2_id])

    def to_dict(self):
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'category_id': self.category_id,
            'round': self.round_num,
            'team1': self.team1_id,
            'team2': self.team2_id,
            'team1_score': self.team1_score,
            'team2_score': self.team2_score,
            'status': self.status,
            'scheduled_at': _iso(self.scheduled_at),
        }


class PlayerProfile(db.Model):
    __tablename__ = 'player_profiles'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    game_id = db.Column(db.Integer, db.ForeignKey('games.id'), nullable=False)
    rating = db.Column(db.Integer, nullable=True)
    meta = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    game = db.relationship('Game')

    __table_args__ = (
        db.UniqueConstraint('user_id', 'game_id', name='unique_profile_per_game'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'game_id': self.game_id,
            'game': self.game.to_dict() if self.game else None,
            'rating': self.rating,
            'meta': self.meta,
        }
