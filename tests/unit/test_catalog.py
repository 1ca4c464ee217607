"""
Unit tests for TournamentCatalog.
"""
from datetime import datetime

import pytest
from werkzeug.exceptions import BadRequest, Forbidden, NotFound

from tourney.models import TournamentCategory


class TestGames:
    def test_duplicate_key(self, services, game):
        with pytest.raises(BadRequest):
            services.catalog.create_game('pickleball', 'Again')

    def test_list_sorted_by_name(self, services):
        services.catalog.create_game('tennis', 'Tennis')
        services.catalog.create_game('badminton', 'Badminton')
        assert [g.key for g in services.catalog.list_games()] == ['badminton', 'tennis']


class TestCreateTournament:
    def test_follower_cannot_create(self, services, organization, game, make_user):
        follower = make_user()
        services.identity.join_organization(follower.id, organization.id)
        with pytest.raises(Forbidden):
            services.catalog.create_tournament(organization.id, follower.id, game.id, 'Cup', 'cup')

    def test_outsider_cannot_create(self, services, organization, game, make_user):
        with pytest.raises(Forbidden):
            services.catalog.create_tournament(organization.id, make_user().id, game.id, 'Cup', 'cup')

    def test_missing_organization(self, services, manager, game):
        with pytest.raises(NotFound):
            services.catalog.create_tournament(999, manager.id, game.id, 'Cup', 'cup')

    def test_missing_game(self, services, organization, manager):
        with pytest.raises(NotFound):
            services.catalog.create_tournament(organization.id, manager.id, 999, 'Cup', 'cup')

    def test_duplicate_slug_in_org(self, services, organization, manager, game, tournament):
        with pytest.raises(BadRequest):
            services.catalog.create_tournament(organization.id, manager.id, game.id, 'Again', 'open')

    def test_same_slug_in_other_org(self, services, tournament, game, make_user):
        other_manager = make_user()
        other = services.identity.create_organization(creator_id=other_manager.id, name='Beta', slug='beta')
        created = services.catalog.create_tournament(other.id, other_manager.id, game.id, 'Beta Open', 'open')
        assert created.slug == 'open'

    def test_unknown_field(self, services, organization, manager, game):
        with pytest.raises(BadRequest):
            services.catalog.create_tournament(organization.id, manager.id, game.id, 'Cup', 'cup', prize=100)

    def test_optional_fields(self, services, organization, manager, game):
        start = datetime(2026, 5, 1)
        t = services.catalog.create_tournament(
            organization.id, manager.id, game.id, 'Cup', 'cup',
            start_date=start, courts_count=4
        )
        assert t.start_date == start
        assert t.courts_count == 4
        assert t.created_by == manager.id


class TestUpdateTournament:
    def test_manager_updates(self, services, organization, tournament, manager):
        services.catalog.update_tournament(organization.id, tournament.id, manager.id, name='Renamed')
        assert tournament.name == 'Renamed'

    def test_wrong_org(self, services, tournament, manager):
        other = services.identity.create_organization(creator_id=manager.id, name='Beta', slug='beta')
        with pytest.raises(Forbidden):
            services.catalog.update_tournament(other.id, tournament.id, manager.id, name='X')

    def test_slug_collision(self, services, organization, tournament, manager, game):
        services.catalog.create_tournament(organization.id, manager.id, game.id, 'Cup', 'cup')
        with pytest.raises(BadRequest):
            services.catalog.update_tournament(organization.id, tournament.id, manager.id, slug='cup')


    def test_explicit_none_clears_optional_field(self, services, organization, manager, game):
        t = services.catalog.create_tournament(
            organization.id, manager.id, game.id, 'Cup', 'cup',
            description='Summer cup', reg_deadline=datetime(2026, 4, 1)
        )
        services.catalog.update_tournament(organization.id, t.id, manager.id, reg_deadline=None)
        assert t.reg_deadline is None
        assert t.description == 'Summer cup'

    @pytest.mark.parametrize("field", ['name', 'slug', 'game_id'])
    def test_required_field_cannot_be_cleared(self, services, organization, tournament, manager, field):
        with pytest.raises(BadRequest):
            services.catalog.update_tournament(organization.id, tournament.id, manager.id, **{field: None})
        assert tournament.name == 'Acme Open'

class TestListings:
    def test_organization_tournaments_newest_first(self, services, organization, manager, game, tournament, singles):
        services.catalog.create_tournament(organization.id, manager.id, game.id, 'Later', 'later')

        listing = services.catalog.get_organization_tournaments(organization.id)

        assert [t['slug'] for t in listing] == ['later', 'open']
        open_entry = listing[1]
        assert open_entry['game']['key'] == 'pickleball'
        assert open_entry['counts'] == {'registrations': 0, 'matches': 0}
        assert open_entry['categories'][0]['counts'] == {'registrations': 0, 'teams': 0}

    def test_missing_organization(self, services):
        with pytest.raises(NotFound):
            services.catalog.get_organization_tournaments(999)

    def test_hosted_tournaments(self, services, tournament, manager, make_user):
        assert [t.id for t in services.catalog.get_hosted_tournaments(manager.id)] == [tournament.id]
        assert services.catalog.get_hosted_tournaments(make_user().id) == []


class TestCategories:
    def test_team_category_needs_team_size(self, services, organization, tournament, manager):
        with pytest.raises(BadRequest):
            services.catalog.add_category(
                organization.id, tournament.id, manager.id, name='Doubles', key='doubles', entry_type='TEAM'
            )

    def test_invalid_entry_type(self, services, organization, tournament, manager):
        with pytest.raises(BadRequest):
            services.catalog.add_category(
                organization.id, tournament.id, manager.id, name='Mixed', key='mixed', entry_type='PAIR'
            )

    def test_team_size_is_merged_into_settings(self, services, organization, tournament, manager):
        category = services.catalog.add_category(
            organization.id, tournament.id, manager.id, name='Doubles', key='doubles',
            entry_type='TEAM', team_size=2, settings={'format': 'round_robin'}
        )
        assert category.settings == {'format': 'round_robin', 'teamSize': 2}
        assert category.team_size == 2

    def test_duplicate_key(self, services, organization, tournament, manager, singles):
        with pytest.raises(BadRequest):
            services.catalog.add_category(
                organization.id, tournament.id, manager.id, name='Again', key='singles', entry_type='INDIVIDUAL'
            )

    def test_follower_cannot_add(self, services, organization, tournament, make_user):
        follower = make_user()
        services.identity.join_organization(follower.id, organization.id)
        with pytest.raises(Forbidden):
            services.catalog.add_category(
                organization.id, tournament.id, follower.id, name='X', key='x', entry_type='INDIVIDUAL'
            )

    def test_update_keeps_other_settings(self, services, organization, tournament, manager):
        category = services.catalog.add_category(
            organization.id, tournament.id, manager.id, name='Doubles', key='doubles',
            entry_type='TEAM', team_size=2, settings={'format': 'round_robin'}
        )
        services.catalog.update_category(
            organization.id, tournament.id, category.id, manager.id, team_size=3, name='Triples'
        )
        assert category.name == 'Triples'
        assert category.settings == {'format': 'round_robin', 'teamSize': 3}

    def test_explicit_none_clears_category_limit(self, services, organization, tournament, manager):
        category = services.catalog.add_category(
            organization.id, tournament.id, manager.id, name='Singles', key='singles',
            entry_type='INDIVIDUAL', entry_limit=16, reg_deadline=datetime(2026, 4, 1)
        )
        services.catalog.update_category(
            organization.id, tournament.id, category.id, manager.id, entry_limit=None, reg_deadline=None
        )
        assert category.entry_limit is None
        assert category.reg_deadline is None
        assert category.name == 'Singles'

    def test_category_key_cannot_be_cleared(self, services, organization, tournament, manager, singles):
        with pytest.raises(BadRequest):
            services.catalog.update_category(organization.id, tournament.id, singles.id, manager.id, key=None)

    def test_switch_to_team_requires_size(self, services, organization, tournament, manager, singles):
        with pytest.raises(BadRequest):
            services.catalog.update_category(
                organization.id, tournament.id, singles.id, manager.id, entry_type='TEAM'
            )

    def test_category_of_other_tournament(self, services, organization, manager, game, singles):
        other = services.catalog.create_tournament(organization.id, manager.id, game.id, 'Cup', 'cup')
        with pytest.raises(Forbidden):
            services.catalog.update_category(organization.id, other.id, singles.id, manager.id, name='X')

    def test_delete_empty_category(self, services, organization, tournament, manager, singles):
        result = services.catalog.delete_category(organization.id, tournament.id, singles.id, manager.id)
        assert result == {'message': 'Category deleted successfully'}
        assert TournamentCategory.query.count() == 0

    def test_delete_category_with_registrations(self, services, organization, tournament, manager, singles,
                                                make_user):
        player = make_user()
        services.registrations.register(player.id, tournament.id, singles.id)
        with pytest.raises(BadRequest):
            services.catalog.delete_category(organization.id, tournament.id, singles.id, manager.id)

    def test_delete_missing_category(self, services, organization, tournament, manager):
        with pytest.raises(NotFound):
            services.catalog.delete_category(organization.id, tournament.id, 999, manager.id)
