"""
Unit tests for authorization predicates.
Each predicate is exercised on its own, then combined.
"""
import pytest
from werkzeug.exceptions import Forbidden

from tourney.models import db, OrgMembership, Role
from tourney.permissions import (
    can_manage_tournament,
    current_role,
    get_membership,
    is_creator,
    is_manager,
    require_tournament_manager,
)


class TestIsManager:
    @pytest.mark.parametrize("role,expected", [
        (Role.SUPER_MANAGER.value, True),
        (Role.MANAGER.value, True),
        (Role.FOLLOWER.value, False),
    ])
    def test_roles(self, role, expected):
        assert is_manager(OrgMembership(role=role)) is expected

    def test_no_membership(self):
        assert is_manager(None) is False


class TestIsCreator:
    def test_creator(self, tournament, manager):
        assert is_creator(tournament, manager.id)

    def test_not_creator(self, tournament, make_user):
        assert not is_creator(tournament, make_user().id)


class TestCurrentRole:
    def test_reflects_latest_membership(self, organization, manager):
        assert current_role(organization.id, manager.id) == 'super_manager'

        membership = get_membership(organization.id, manager.id)
        membership.role = Role.FOLLOWER.value
        db.session.commit()

        assert current_role(organization.id, manager.id) == 'follower'

    def test_non_member(self, organization, make_user):
        assert current_role(organization.id, make_user().id) is None


class TestCanManageTournament:
    def test_creator_keeps_rights_after_demotion(self, tournament, organization, manager):
        membership = get_membership(organization.id, manager.id)
        membership.role = Role.FOLLOWER.value
        db.session.commit()

        assert can_manage_tournament(tournament, manager.id)

    def test_manager_who_is_not_creator(self, services, tournament, organization, make_user):
        other = make_user()
        services.identity.join_organization(other.id, organization.id, role='manager')
        assert can_manage_tournament(tournament, other.id)

    def test_follower_who_is_not_creator(self, services, tournament, organization, make_user):
        other = make_user()
        services.identity.join_organization(other.id, organization.id)
        assert not can_manage_tournament(tournament, other.id)
        with pytest.raises(Forbidden):
            require_tournament_manager(tournament, other.id)
