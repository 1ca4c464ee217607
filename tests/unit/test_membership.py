"""
Unit tests for IdentityService.
Covers accounts, organizations and organization membership.
"""
import pytest
from werkzeug.exceptions import BadRequest, Conflict, NotFound, Unauthorized

from tourney.models import Notification, OrgMembership


class TestAccounts:
    """Registration, login and profiles."""

    def test_register_normalizes_email(self, services):
        user = services.identity.register_user('Ana', '  Ana@Example.COM ', 'secret')
        assert user.email == 'ana@example.com'
        assert user.password_hash != 'secret'

    def test_duplicate_email(self, services):
        services.identity.register_user('Ana', 'ana@example.com', 'secret')
        with pytest.raises(Conflict):
            services.identity.register_user('Other', 'ANA@example.com', 'secret')

    def test_login_returns_token_and_roles(self, services, organization, manager):
        result = services.identity.login(manager.email, 'password123')

        assert result['user']['id'] == manager.id
        assert result['user']['roles'] == ['super_manager']
        principal = services.identity.principal_from_token(result['access_token'])
        assert principal.user_id == manager.id

    @pytest.mark.parametrize("email,password", [
        ('player1@test.com', 'wrong'),
        ('nobody@test.com', 'password123'),
    ])
    def test_login_rejects_bad_credentials(self, services, make_user, email, password):
        make_user()
        with pytest.raises(Unauthorized):
            services.identity.login(email, password)

    def test_update_profile(self, services, make_user):
        user = make_user()
        services.identity.update_profile(user.id, name='Renamed', phone='555')
        profile = services.identity.get_profile(user.id)
        assert profile.name == 'Renamed'
        assert profile.phone == '555'

    def test_update_profile_rejects_email(self, services, make_user):
        user = make_user()
        with pytest.raises(BadRequest):
            services.identity.update_profile(user.id, email='new@test.com')

    def test_missing_profile(self, services):
        with pytest.raises(NotFound):
            services.identity.get_profile(999)

    def test_user_is_a_login_user(self, app, services, make_user):
        user = make_user()
        assert user.get_id() == str(user.id)
        assert user.is_authenticated
        assert not hasattr(app, 'login_manager')


class TestCreateOrganization:
    def test_creator_is_super_manager(self, services, organization, manager):
        assert services.identity.role_of(organization.id, manager.id) == 'super_manager'

    def test_duplicate_slug(self, services, organization, make_user):
        with pytest.raises(Conflict):
            services.identity.create_organization(creator_id=make_user().id, name='Other', slug='acme')

    def test_unknown_default_game(self, services, manager):
        with pytest.raises(NotFound):
            services.identity.create_organization(creator_id=manager.id, name='X', slug='x', default_game_id=999)
        assert OrgMembership.query.count() == 0


class TestJoinOrganization:
    def test_join_defaults_to_follower(self, services, organization, make_user):
        user = make_user()
        membership = services.identity.join_organization(user.id, organization.id)
        assert membership.role == 'follower'

    def test_join_with_explicit_role(self, services, organization, make_user):
        user = make_user()
        membership = services.identity.join_organization(user.id, organization.id, role='manager')
        assert membership.role == 'manager'

    def test_join_twice(self, services, organization, make_user):
        user = make_user()
        services.identity.join_organization(user.id, organization.id)
        with pytest.raises(Conflict):
            services.identity.join_organization(user.id, organization.id)

    def test_unknown_role(self, services, organization, make_user):
        with pytest.raises(BadRequest):
            services.identity.join_organization(make_user().id, organization.id, role='owner')

    def test_missing_organization(self, services, make_user):
        with pytest.raises(NotFound):
            services.identity.join_organization(make_user().id, 999)

    def test_join_notifies_the_member(self, services, organization, make_user):
        user = make_user()
        services.identity.join_organization(user.id, organization.id)

        notification = Notification.query.filter_by(user_id=user.id).one()
        assert notification.type == 'organizationJoined'
        assert notification.payload['organization_id'] == organization.id
        assert notification.delivered is False

    def test_user_organizations(self, services, organization, make_user):
        user = make_user()
        services.identity.join_organization(user.id, organization.id)
        memberships = services.identity.get_user_organizations(user.id)
        assert [m.org_id for m in memberships] == [organization.id]
