import logging
import os
from dataclasses import dataclass

from flask import Flask

from shared.pubsub import EventBus, redis_from_url
from .auth import Authenticator
from .catalog import TournamentCatalog
from .commands import register_commands
from .config import config
from .membership import IdentityService
from .models import db
from .notifications import NotificationCenter, NotificationFanout
from .registrations import RegistrationService
from .stats import StatsService
from .teams import TeamService


@dataclass
class Services:
    events: EventBus
    identity: IdentityService
    catalog: TournamentCatalog
    teams: TeamService
    registrations: RegistrationService
    notifications: NotificationCenter
    stats: StatsService


def build_services(app: Flask, events: EventBus = None) -> Services:
    """Wire the lifecycle services around one event bus."""
    if events is None:
        events = EventBus(redis_from_url(app.config.get('REDIS_URL')))

    authenticator = Authenticator(
        app.config['SECRET_KEY'],
        max_age=app.config['TOKEN_MAX_AGE'],
        hash_method=app.config['PASSWORD_HASH_METHOD']
    )
    notifications = NotificationCenter(events)
    NotificationFanout(notifications).register(events)

    teams = TeamService(events)
    return Services(
        events=events,
        identity=IdentityService(authenticator, events),
        catalog=TournamentCatalog(),
        teams=teams,
        registrations=RegistrationService(events),
        notifications=notifications,
        stats=StatsService(teams),
    )


def configure_logging(app: Flask):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    logging.getLogger('tourney').setLevel(level)
    logging.getLogger('shared').setLevel(level)


def create_app(config_name: str = None) -> Flask:
    """Application factory for the tournament backend."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    configure_logging(app)

    # Initialize extensions
    db.init_app(app)

    # Create tables
    with app.app_context():
        db.create_all()

    # Store services on app for access by callers
    app.services = build_services(app)
    register_commands(app)

    return app
