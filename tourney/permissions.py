"""
Authorization predicates.

Roles are always re-read from the store; token claims only prove identity.
"""
from typing import Optional

from werkzeug.exceptions import Forbidden

from .models import OrgMembership, Tournament, MANAGER_ROLES


def get_membership(org_id: int, user_id: int) -> Optional[OrgMembership]:
    return OrgMembership.query.filter_by(org_id=org_id, user_id=user_id).first()


def current_role(org_id: int, user_id: int) -> Optional[str]:
    """Role of ``user_id`` in ``org_id`` as of now, or None when not a member."""
    membership = get_membership(org_id, user_id)
    return membership.role if membership else None


def is_manager(membership: Optional[OrgMembership]) -> bool:
    return membership is not None and membership.role in MANAGER_ROLES


def is_creator(tournament: Tournament, user_id: int) -> bool:
    return tournament.created_by == user_id


def can_manage_tournament(tournament: Tournament, user_id: int) -> bool:
    """Creator of the tournament, or a manager of its organization."""
    if is_creator(tournament, user_id):
        return True
    return is_manager(get_membership(tournament.org_id, user_id))


def require_tournament_manager(tournament: Tournament, user_id: int, action: str = 'manage this tournament'):
    if not can_manage_tournament(tournament, user_id):
        raise Forbidden(f'Not authorized to {action}')
