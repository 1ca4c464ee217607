"""
Pytest configuration and fixtures for the tournament backend tests.
"""
import itertools
import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Set testing environment before importing app
os.environ['FLASK_ENV'] = 'testing'

from tourney.app import create_app
from tourney.models import db, Match


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before each test."""
    db.session.remove()

    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture
def services(app, db_session):
    return app.services


@pytest.fixture
def make_user(services):
    """Factory registering users with unique emails."""
    counter = itertools.count(1)

    def _make(name: str = None):
        n = next(counter)
        return services.identity.register_user(
            name=name or f'Player {n}',
            email=f'player{n}@test.com',
            password='password123'
        )
    return _make


@pytest.fixture
def manager(make_user):
    return make_user('Manager')


@pytest.fixture
def game(services):
    return services.catalog.create_game('pickleball', 'Pickleball')


@pytest.fixture
def organization(services, manager, game):
    return services.identity.create_organization(
        creator_id=manager.id,
        name='Acme',
        slug='acme',
        default_game_id=game.id
    )


@pytest.fixture
def tournament(services, organization, manager, game):
    return services.catalog.create_tournament(
        org_id=organization.id,
        caller_id=manager.id,
        game_id=game.id,
        name='Acme Open',
        slug='open'
    )


@pytest.fixture
def singles(services, organization, tournament, manager):
    """Individual-entry category."""
    return services.catalog.add_category(
        organization.id, tournament.id, manager.id,
        name='Singles', key='singles', entry_type='INDIVIDUAL'
    )


@pytest.fixture
def doubles(services, organization, tournament, manager):
    """Team-entry category with two seats per team."""
    return services.catalog.add_category(
        organization.id, tournament.id, manager.id,
        name='Doubles', key='doubles', entry_type='TEAM', team_size=2
    )


@pytest.fixture
def make_match(db_session):
    def _make(tournament, team1, team2, team1_score=None, team2_score=None, status='scheduled'):
        match = Match(
            tournament_id=tournament.id,
            category_id=team1.category_id,
            team1_id=team1.id,
            team2_id=team2.id,
            team1_score=team1_score,
            team2_score=team2_score,
            status=status
        )
        db.session.add(match)
        db.session.commit()
        return match
    return _make
