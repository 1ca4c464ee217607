"""Game catalog CLI commands."""

import click
from flask import current_app
from flask.cli import with_appcontext
from werkzeug.exceptions import BadRequest

from .models import Game

DEFAULT_GAMES = [
    ('pickleball', 'Pickleball'),
    ('tennis', 'Tennis'),
    ('badminton', 'Badminton'),
    ('table-tennis', 'Table Tennis'),
]


@click.group('games')
def game_commands():
    """Game catalog commands."""
    pass


@game_commands.command('seed')
@with_appcontext
def seed_games():
    """Create the default games that are not present yet.

    Example:
        flask --app tourney.app games seed
    """
    catalog = current_app.services.catalog
    created = 0
    for key, name in DEFAULT_GAMES:
        if Game.query.filter_by(key=key).first():
            continue
        catalog.create_game(key, name)
        created += 1
    click.echo(f'Seeded {created} game(s)')


@game_commands.command('add')
@click.argument('key')
@click.argument('name')
@with_appcontext
def add_game(key, name):
    """Add a single game."""
    try:
        game = current_app.services.catalog.create_game(key, name)
    except BadRequest as e:
        click.echo(click.style(f'Error: {e.description}', fg='red'))
        raise SystemExit(1)
    click.echo(f'Created game {game.key} (id {game.id})')


def register_commands(app):
    app.cli.add_command(game_commands)
