import logging
from typing import List, Optional

from werkzeug.exceptions import BadRequest, Forbidden, NotFound

from .models import (
    db, CategorySettings, EntryType, Game, Organization, Tournament, TournamentCategory
)
from .permissions import get_membership, is_manager, require_tournament_manager
from .store import commit_or_raise

logger = logging.getLogger(__name__)

TOURNAMENT_FIELDS = (
    'description', 'reg_deadline', 'start_date', 'end_date', 'courts_count',
    'match_duration_minutes', 'buffer_minutes', 'scoring_mode', 'settings',
)
CATEGORY_FIELDS = (
    'entry_limit', 'reg_deadline', 'start_date', 'end_date', 'courts_count',
    'match_duration_minutes', 'buffer_minutes', 'scoring_mode',
)


def _pick(values: dict, allowed) -> dict:
    unknown = set(values) - set(allowed)
    if unknown:
        raise BadRequest(f"Unknown field(s): {', '.join(sorted(unknown))}")
    return values


def _require_values(changes: dict, required) -> dict:
    """Present keys are applied as given; only ``required`` fields may not be cleared."""
    cleared = [key for key in required if key in changes and changes[key] is None]
    if cleared:
        raise BadRequest(f"Field(s) cannot be cleared: {', '.join(cleared)}")
    return changes


def _entry_type(value: str) -> str:
    try:
        return EntryType(value).value
    except ValueError:
        raise BadRequest(f"entryType must be one of {', '.join(e.value for e in EntryType)}")


def _slug_taken(slug: str) -> BadRequest:
    return BadRequest(f"Tournament with slug '{slug}' already exists in this organization")


def _key_taken(key: str) -> BadRequest:
    return BadRequest(f"Category with key '{key}' already exists in this tournament")


class TournamentCatalog:
    """
    Tournaments and their categories, mutated only by managers of the owning
    organization or by the tournament's creator.
    """

    # ==================== Games ====================

    def create_game(self, key: str, name: str) -> Game:
        if Game.query.filter_by(key=key).first():
            raise BadRequest(f"Game with key '{key}' already exists")
        game = Game(key=key, name=name)
        db.session.add(game)
        commit_or_raise(BadRequest(f"Game with key '{key}' already exists"))
        return game

    def list_games(self) -> List[Game]:
        return Game.query.order_by(Game.name).all()

    # ==================== Tournaments ====================

    def create_tournament(
        self,
        org_id: int,
        caller_id: int,
        game_id: int,
        name: str,
        slug: str,
        **fields
    ) -> Tournament:
        """Create a tournament inside an organization. Managers only."""
        fields = _pick(fields, TOURNAMENT_FIELDS)

        if db.session.get(Organization, org_id) is None:
            raise NotFound('Organization not found')

        if not is_manager(get_membership(org_id, caller_id)):
            raise Forbidden('Only managers can create tournaments')

        if db.session.get(Game, game_id) is None:
            raise NotFound(f'Game with ID {game_id} not found')

        if Tournament.query.filter_by(org_id=org_id, slug=slug).first():
            raise _slug_taken(slug)

        tournament = Tournament(
            org_id=org_id,
            game_id=game_id,
            name=name,
            slug=slug,
            created_by=caller_id,
            **fields
        )
        db.session.add(tournament)
        commit_or_raise(_slug_taken(slug))

        logger.info(f"Tournament {org_id}/{slug} created by user {caller_id}")
        return tournament

    def _tournament_in_org(self, org_id: int, tournament_id: int) -> Tournament:
        tournament = db.session.get(Tournament, tournament_id)
        if not tournament:
            raise NotFound('Tournament not found')
        if tournament.org_id != org_id:
            raise Forbidden('Tournament does not belong to this organization')
        return tournament

    def update_tournament(self, org_id: int, tournament_id: int, caller_id: int, **changes) -> Tournament:
        changes = _pick(changes, TOURNAMENT_FIELDS + ('name', 'slug', 'game_id'))
        _require_values(changes, ('name', 'slug', 'game_id'))
        tournament = self._tournament_in_org(org_id, tournament_id)
        require_tournament_manager(tournament, caller_id, 'update this tournament')

        new_slug = changes.get('slug')
        if new_slug and new_slug != tournament.slug:
            if Tournament.query.filter_by(org_id=org_id, slug=new_slug).first():
                raise _slug_taken(new_slug)

        if changes.get('game_id') and db.session.get(Game, changes['game_id']) is None:
            raise NotFound(f"Game with ID {changes['game_id']} not found")

        for key, value in changes.items():
            setattr(tournament, key, value)
        commit_or_raise(_slug_taken(tournament.slug))
        return tournament

    def get_organization_tournaments(self, org_id: int) -> List[dict]:
        """Tournaments of an organization, newest first, with entry counts."""
        if db.session.get(Organization, org_id) is None:
            raise NotFound('Organization not found')

        tournaments = (
            Tournament.query
            .filter_by(org_id=org_id)
            .order_by(Tournament.created_at.desc(), Tournament.id.desc())
            .all()
        )

        result = []
        for t in tournaments:
            data = t.to_dict()
            data['game'] = t.game.to_dict() if t.game else None
            data['counts'] = {
                'registrations': len(t.registrations),
                'matches': len(t.matches),
            }
            data['categories'] = []
            for c in t.categories:
                category = c.to_dict()
                category['counts'] = {
                    'registrations': len(c.registrations),
                    'teams': len(c.teams),
                }
                data['categories'].append(category)
            result.append(data)
        return result

    def get_hosted_tournaments(self, user_id: int) -> List[Tournament]:
        return (
            Tournament.query
            .filter_by(created_by=user_id)
            .order_by(Tournament.created_at.desc(), Tournament.id.desc())
            .all()
        )

    # ==================== Categories ====================

    def add_category(
        self,
        org_id: int,
        tournament_id: int,
        caller_id: int,
        name: str,
        key: str,
        entry_type: str,
        team_size: Optional[int] = None,
        settings: Optional[dict] = None,
        **fields
    ) -> TournamentCategory:
        fields = _pick(fields, CATEGORY_FIELDS)
        tournament = self._tournament_in_org(org_id, tournament_id)
        require_tournament_manager(tournament, caller_id, 'add categories')

        entry_type = _entry_type(entry_type)
        if entry_type == EntryType.TEAM.value and not team_size:
            raise BadRequest('teamSize is required for TEAM entryType')

        if TournamentCategory.query.filter_by(tournament_id=tournament_id, key=key).first():
            raise _key_taken(key)

        merged = CategorySettings.from_dict(settings).merged(team_size=team_size)
        category = TournamentCategory(
            tournament_id=tournament_id,
            name=name,
            key=key,
            entry_type=entry_type,
            settings=merged.to_dict(),
            **fields
        )
        db.session.add(category)
        commit_or_raise(_key_taken(key))

        logger.info(f"Category {key} ({entry_type}) added to tournament {tournament_id}")
        return category

    def _category_in_tournament(self, org_id: int, tournament_id: int, category_id: int) -> TournamentCategory:
        category = db.session.get(TournamentCategory, category_id)
        if not category:
            raise NotFound('Category not found')
        if category.tournament_id != tournament_id:
            raise Forbidden('Category does not belong to this tournament')
        if category.tournament.org_id != org_id:
            raise Forbidden('Tournament does not belong to this organization')
        return category

    def update_category(
        self,
        org_id: int,
        tournament_id: int,
        category_id: int,
        caller_id: int,
        **changes
    ) -> TournamentCategory:
        changes = _pick(changes, CATEGORY_FIELDS + ('name', 'key', 'entry_type', 'team_size', 'settings'))
        _require_values(changes, ('name', 'key'))
        category = self._category_in_tournament(org_id, tournament_id, category_id)
        require_tournament_manager(category.tournament, caller_id, 'update this category')

        entry_type = _entry_type(changes.pop('entry_type', None) or category.entry_type)
        settings = category.settings_obj.merged(changes.pop('settings', None), changes.pop('team_size', None))
        if entry_type == EntryType.TEAM.value and not settings.team_size:
            raise BadRequest('teamSize is required for TEAM entryType')

        new_key = changes.get('key')
        if new_key and new_key != category.key:
            if TournamentCategory.query.filter_by(tournament_id=tournament_id, key=new_key).first():
                raise _key_taken(new_key)

        for field, value in changes.items():
            setattr(category, field, value)
        category.entry_type = entry_type
        category.settings = settings.to_dict()
        commit_or_raise(_key_taken(category.key))
        return category

    def delete_category(self, org_id: int, tournament_id: int, category_id: int, caller_id: int) -> dict:
        category = self._category_in_tournament(org_id, tournament_id, category_id)
        require_tournament_manager(category.tournament, caller_id, 'delete this category')

        if category.registrations or category.teams:
            raise BadRequest('Cannot delete category with existing registrations or teams')

        db.session.delete(category)
        db.session.commit()

        logger.info(f"Category {category_id} deleted from tournament {tournament_id}")
        return {'message': 'Category deleted successfully'}
