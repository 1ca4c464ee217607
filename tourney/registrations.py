import logging
from datetime import datetime
from typing import List, Optional

from werkzeug.exceptions import BadRequest, Forbidden, NotFound

from shared.events import EventType, registration_event
from shared.pubsub import EventBus
from .models import db, Registration, RegistrationStatus, Team, TournamentCategory
from .store import commit_or_raise, lock_row

logger = logging.getLogger(__name__)

DUPLICATE_REGISTRATION = 'You are already registered for this category'
TEAM_ALREADY_REGISTERED = 'Team is already registered for this category'


class RegistrationService:
    """
    Individual and team entries into categories, and their payment.

    A registration is paid at most once; payment of a team registration
    freezes that team's roster.
    """

    def __init__(self, events: EventBus):
        self.events = events

    @staticmethod
    def _participants(registration: Registration) -> List[int]:
        if registration.team_id is None:
            return [registration.user_id]
        return registration.team.roster_ids()

    @staticmethod
    def _active_count(category_id: int) -> int:
        return Registration.query.filter_by(
            category_id=category_id,
            status=RegistrationStatus.REGISTERED.value
        ).count()

    def register(
        self,
        user_id: int,
        tournament_id: int,
        category_id: int,
        team_id: Optional[int] = None
    ) -> Registration:
        # Capacity and uniqueness checks below run one request at a time per category
        category = lock_row(TournamentCategory, category_id)
        if not category or category.tournament_id != tournament_id:
            raise NotFound('Category not found')

        existing = Registration.query.filter_by(
            tournament_id=tournament_id,
            category_id=category_id,
            user_id=user_id,
            status=RegistrationStatus.REGISTERED.value
        ).first()
        if existing:
            raise BadRequest(DUPLICATE_REGISTRATION)

        deadline = category.reg_deadline or category.tournament.reg_deadline
        if deadline and deadline < datetime.utcnow():
            raise BadRequest('Registration deadline has passed')
        if category.entry_limit and self._active_count(category_id) >= category.entry_limit:
            raise BadRequest('Category is full')

        team = None
        if category.is_team:
            if not team_id:
                raise BadRequest('teamId is required for TEAM categories')
            team = db.session.get(Team, team_id)
            if not team:
                raise NotFound('Team not found')
            if team.category_id != category_id:
                raise BadRequest('Team does not belong to this category')
            if user_id not in team.roster_ids():
                raise Forbidden('Only the captain or accepted members can register the team')
            if any(r.is_active for r in team.registrations):
                raise BadRequest(TEAM_ALREADY_REGISTERED)

        registration = Registration(
            tournament_id=tournament_id,
            category_id=category_id,
            user_id=user_id,
            team_id=team.id if team else None,
            status=RegistrationStatus.REGISTERED.value,
            paid=False
        )
        db.session.add(registration)
        commit_or_raise(BadRequest(TEAM_ALREADY_REGISTERED if team else DUPLICATE_REGISTRATION))

        logger.info(f"Registration {registration.id}: user {user_id} in category {category_id}"
                    + (f" with team {team.id}" if team else ""))
        self.events.publish(registration_event(
            EventType.REGISTRATION_CONFIRMED, registration, self._participants(registration)
        ))
        return registration

    @staticmethod
    def _authorize(registration: Registration, user_id: int, action: str):
        if registration.team_id is not None:
            if registration.team.captain_id != user_id:
                raise Forbidden(f'Only the team captain can {action} a team registration')
        elif registration.user_id != user_id:
            raise Forbidden(f'Not authorized to {action} this registration')

    def _get(self, registration_id: int) -> Registration:
        registration = db.session.get(Registration, registration_id)
        if not registration:
            raise NotFound('Registration not found')
        return registration

    def pay(self, user_id: int, registration_id: int, payment_info: dict = None) -> Registration:
        registration = self._get(registration_id)
        if registration.paid:
            raise BadRequest('Registration is already paid')
        if not registration.is_active:
            raise BadRequest('Cannot pay for a cancelled registration')

        self._authorize(registration, user_id, 'pay')

        # Conditional update so two concurrent payments cannot both succeed
        paid_at = datetime.utcnow()
        updated = (
            Registration.query
            .filter_by(id=registration.id, paid=False, status=RegistrationStatus.REGISTERED.value)
            .update({'paid': True, 'payment_info': payment_info, 'paid_at': paid_at},
                    synchronize_session=False)
        )
        if updated != 1:
            db.session.rollback()
            raise BadRequest('Registration is already paid')
        db.session.commit()
        db.session.refresh(registration)

        logger.info(f"Registration {registration.id} paid by user {user_id}")
        self.events.publish(registration_event(
            EventType.PAYMENT_CONFIRMED, registration, self._participants(registration)
        ))
        return registration

    def cancel(self, user_id: int, registration_id: int) -> Registration:
        registration = self._get(registration_id)
        self._authorize(registration, user_id, 'cancel')
        if not registration.is_active:
            raise BadRequest('Registration is already cancelled')
        if registration.paid:
            raise BadRequest('Paid registrations cannot be cancelled')

        registration.status = RegistrationStatus.CANCELLED.value
        db.session.commit()

        logger.info(f"Registration {registration.id} cancelled by user {user_id}")
        self.events.publish(registration_event(
            EventType.REGISTRATION_CANCELLED, registration, self._participants(registration)
        ))
        return registration

    def get_my_registrations(self, user_id: int) -> List[Registration]:
        return (
            Registration.query
            .filter_by(user_id=user_id, status=RegistrationStatus.REGISTERED.value)
            .order_by(Registration.created_at.desc(), Registration.id.desc())
            .all()
        )
