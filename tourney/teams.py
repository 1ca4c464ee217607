import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, or_
from werkzeug.exceptions import BadRequest, Forbidden, NotFound

from shared.events import EventType, team_event
from shared.pubsub import EventBus
from shared.state_machine import MemberStateMachine, TransitionError
from .models import (
    db, MemberStatus, Registration, RegistrationStatus, Team, TeamMember, TournamentCategory, User
)
from .store import commit_or_raise, lock_row

logger = logging.getLogger(__name__)


class TeamService:
    """
    Team formation inside TEAM categories.

    A user holds at most one seat (captain, invited or accepted) per category,
    and a team never holds more seats than the category's team size. Once a
    team's registration is paid its roster is frozen.
    """

    def __init__(self, events: EventBus):
        self.events = events

    # ==================== Lookups ====================

    def _get_team(self, team_id: int, lock: bool = False) -> Team:
        team = lock_row(Team, team_id) if lock else db.session.get(Team, team_id)
        if not team:
            raise NotFound('Team not found')
        return team

    def _lock_seats(self, team_id: int) -> Team:
        """
        Lock the team's category, then the team.

        Seat checks span every team of a category, so changes to seats are
        serialized per category. The category is always locked first.
        """
        team = self._get_team(team_id)
        lock_row(TournamentCategory, team.category_id)
        return self._get_team(team_id, lock=True)

    def find_team_in_category(self, user_id: int, category_id: int, exclude_team_id: int = None) -> Optional[Team]:
        """The team in ``category_id`` where the user is captain or has a member row."""
        query = (
            Team.query
            .outerjoin(TeamMember, TeamMember.team_id == Team.id)
            .filter(Team.category_id == category_id)
            .filter(or_(Team.captain_id == user_id, TeamMember.user_id == user_id))
        )
        if exclude_team_id is not None:
            query = query.filter(Team.id != exclude_team_id)
        return query.first()

    def _ensure_free_in_category(self, user_id: int, category_id: int, exclude_team_id: int = None,
                                 who: str = 'You are'):
        existing = self.find_team_in_category(user_id, category_id, exclude_team_id)
        if existing:
            raise BadRequest(f"{who} already in team '{existing.name}' for this category")

    @staticmethod
    def has_paid_registration(team: Team) -> bool:
        return any(r.paid and r.is_active for r in team.registrations)

    @staticmethod
    def _active_registration(team: Team) -> Optional[Registration]:
        for r in team.registrations:
            if r.status == RegistrationStatus.REGISTERED.value:
                return r
        return None

    @staticmethod
    def _member_row(team_id: int, user_id: int) -> Optional[TeamMember]:
        return TeamMember.query.filter_by(team_id=team_id, user_id=user_id).first()

    # ==================== Mutations ====================

    def create_team(self, user_id: int, tournament_id: int, category_id: int, name: str) -> Team:
        category = lock_row(TournamentCategory, category_id)
        if not category or category.tournament_id != tournament_id:
            raise NotFound('Category not found')
        if not category.is_team:
            raise BadRequest('Teams can only be created in TEAM categories')

        self._ensure_free_in_category(user_id, category_id)

        team = Team(
            tournament_id=tournament_id,
            category_id=category_id,
            name=name,
            captain_id=user_id
        )
        db.session.add(team)
        commit_or_raise(BadRequest('You already captain a team in this category'))

        logger.info(f"Team {team.id} '{name}' created by user {user_id} in category {category_id}")
        self.events.publish(team_event(EventType.TEAM_CREATED, team, user_id))
        return team

    def invite_member(self, caller_id: int, team_id: int, invitee_id: int) -> TeamMember:
        team = self._lock_seats(team_id)
        if team.captain_id != caller_id:
            raise Forbidden('Only the team captain can invite members')

        if db.session.get(User, invitee_id) is None:
            raise NotFound('User not found')
        if invitee_id == team.captain_id:
            raise BadRequest('The captain is already part of the team')
        if self._member_row(team_id, invitee_id):
            raise BadRequest('User is already invited to or a member of this team')

        self._ensure_free_in_category(invitee_id, team.category_id, exclude_team_id=team.id, who='User is')

        team_size = team.category.team_size
        if team_size and team.occupancy >= team_size:
            raise BadRequest(f'Team is full (limit {team_size} players)')

        member = TeamMember(team_id=team.id, user_id=invitee_id, status=MemberStatus.INVITED.value)
        db.session.add(member)
        commit_or_raise(BadRequest('User is already invited to or a member of this team'))

        logger.info(f"User {invitee_id} invited to team {team.id}")
        self.events.publish(team_event(EventType.TEAM_INVITE_SENT, team, invitee_id, invited_by=caller_id))
        return member

    def respond_to_invite(self, user_id: int, team_id: int, action: str) -> Optional[TeamMember]:
        """Accept or reject a pending invite. Returns the member row, or None once rejected."""
        if action not in ('accept', 'reject'):
            raise BadRequest("action must be 'accept' or 'reject'")

        team = self._lock_seats(team_id)
        member = self._member_row(team_id, user_id)
        if not member:
            raise NotFound('Invitation not found')

        try:
            MemberStateMachine.from_state_string(member.status).transition(action)
        except TransitionError as e:
            raise BadRequest(e.reason)

        if action == 'accept':
            self._ensure_free_in_category(user_id, team.category_id, exclude_team_id=team.id)
            member.status = MemberStatus.ACCEPTED.value
            member.joined_at = datetime.utcnow()
            db.session.commit()
            event_type = EventType.TEAM_INVITE_ACCEPTED
        else:
            db.session.delete(member)
            db.session.commit()
            member = None
            event_type = EventType.TEAM_INVITE_REJECTED

        logger.info(f"User {user_id} answered invite to team {team.id}: {action}")
        self.events.publish(team_event(event_type, team, user_id))
        return member

    def remove_member(self, caller_id: int, team_id: int, target_user_id: int) -> dict:
        team = self._get_team(team_id, lock=True)
        if team.captain_id != caller_id:
            raise Forbidden('Only the team captain can remove members')
        if target_user_id == team.captain_id:
            raise BadRequest('The captain cannot be removed from the team')
        if self.has_paid_registration(team):
            raise Forbidden('Team roster is locked after payment')

        member = self._member_row(team_id, target_user_id)
        if not member:
            raise NotFound('Team member not found')

        try:
            MemberStateMachine.from_state_string(member.status).transition('remove')
        except TransitionError as e:
            raise BadRequest(e.reason)

        db.session.delete(member)
        db.session.commit()

        logger.info(f"User {target_user_id} removed from team {team.id} by captain {caller_id}")
        self.events.publish(team_event(EventType.TEAM_MEMBER_REMOVED, team, target_user_id))
        return {'message': 'Member removed from team'}

    def leave_team(self, user_id: int, team_id: int) -> dict:
        team = self._get_team(team_id, lock=True)
        if team.captain_id == user_id:
            raise BadRequest('The captain cannot leave the team')

        member = self._member_row(team_id, user_id)
        if not member:
            raise NotFound('You are not a member of this team')
        try:
            MemberStateMachine.from_state_string(member.status).transition('leave')
        except TransitionError:
            raise BadRequest('Only accepted members can leave a team')

        if self.has_paid_registration(team):
            raise Forbidden('Team roster is locked after payment')

        db.session.delete(member)
        db.session.commit()

        result = {'message': 'You have left the team'}
        if self._active_registration(team) is not None:
            result['warning'] = 'Team is registered for the tournament but not yet paid; the roster is now short'

        logger.info(f"User {user_id} left team {team.id}")
        self.events.publish(team_event(EventType.TEAM_MEMBER_LEFT, team, user_id))
        return result

    # ==================== Reads ====================

    def get_my_teams(self, user_id: int) -> dict:
        captained = Team.query.filter_by(captain_id=user_id).order_by(Team.id).all()
        member_of = (
            Team.query
            .join(TeamMember, TeamMember.team_id == Team.id)
            .filter(TeamMember.user_id == user_id)
            .filter(TeamMember.status == MemberStatus.ACCEPTED.value)
            .order_by(Team.id)
            .all()
        )
        return {
            'captain': [t.to_dict() for t in captained],
            'member': [t.to_dict() for t in member_of],
        }

    def get_team_invites(self, user_id: int) -> List[TeamMember]:
        return (
            TeamMember.query
            .filter_by(user_id=user_id, status=MemberStatus.INVITED.value)
            .order_by(TeamMember.invited_at.desc(), TeamMember.id.desc())
            .all()
        )

    def teams_for_user(self, user_id: int) -> List[Team]:
        """Teams where the user is captain or an accepted member."""
        return (
            Team.query
            .outerjoin(TeamMember, TeamMember.team_id == Team.id)
            .filter(or_(
                Team.captain_id == user_id,
                and_(TeamMember.user_id == user_id, TeamMember.status == MemberStatus.ACCEPTED.value)
            ))
            .distinct()
            .all()
        )
