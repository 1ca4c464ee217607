from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import or_
from werkzeug.exceptions import BadRequest, NotFound

from .models import db, Game, Match, PlayerProfile, Registration
from .store import commit_or_raise
from .teams import TeamService

DEFAULT_MATCH_LIMIT = 50


def match_result(match: Match, team_id: int) -> Optional[str]:
    """
    Outcome of ``match`` from the side of ``team_id``.

    Only finished matches with both scores recorded have a result.
    """
    if match.status != 'finished' or match.team1_score is None or match.team2_score is None:
        return None

    if match.team1_id == team_id:
        mine, theirs = match.team1_score, match.team2_score
    else:
        mine, theirs = match.team2_score, match.team1_score

    if mine > theirs:
        return 'won'
    if mine < theirs:
        return 'lost'
    return 'draw'


def win_rate(wins: int, total: int) -> float:
    if not total:
        return 0
    return round(wins / total * 100, 2)


class StatsService:
    """Read-only views over matches, registrations and player profiles."""

    def __init__(self, teams: TeamService):
        self.teams = teams

    def _matches_for_user(self, user_id: int, tournament_id: int = None) -> List[dict]:
        my_teams = {t.id: t for t in self.teams.teams_for_user(user_id)}
        if not my_teams:
            return []

        query = Match.query.filter(or_(
            Match.team1_id.in_(list(my_teams)),
            Match.team2_id.in_(list(my_teams))
        ))
        if tournament_id is not None:
            query = query.filter(Match.tournament_id == tournament_id)
        matches = query.order_by(Match.created_at.desc(), Match.id.desc()).all()

        result = []
        for match in matches:
            team_id = match.team1_id if match.team1_id in my_teams else match.team2_id
            opponent_id = match.team2_id if team_id == match.team1_id else match.team1_id
            data = match.to_dict()
            data['my_team'] = {'id': team_id, 'name': my_teams[team_id].name}
            data['opponent_team_id'] = opponent_id
            data['result'] = match_result(match, team_id)
            result.append(data)
        return result

    def get_my_matches(self, user_id: int, limit: Optional[int] = DEFAULT_MATCH_LIMIT) -> List[dict]:
        """Newest matches first. ``limit=None`` returns every match."""
        matches = self._matches_for_user(user_id)
        if limit is not None:
            matches = matches[:limit]
        return matches

    def get_my_stats(self, user_id: int, tournament_id: int = None) -> dict:
        """
        Totals over every match of the user's teams, optionally for one tournament.

        ``totalMatches`` counts all of them, scheduled ones included.
        ``winRate`` is taken over the ``decidedMatches`` only.
        """
        matches = self._matches_for_user(user_id, tournament_id)
        decided = [m for m in matches if m['result'] is not None]
        wins = sum(1 for m in decided if m['result'] == 'won')
        losses = sum(1 for m in decided if m['result'] == 'lost')

        return {
            'totalMatches': len(matches),
            'decidedMatches': len(decided),
            'wins': wins,
            'losses': losses,
            'draws': len(decided) - wins - losses,
            'winRate': win_rate(wins, len(decided)),
            'playerProfiles': [p.to_dict() for p in self.get_player_profiles(user_id)],
        }

    def get_tournament_history(self, user_id: int) -> List[dict]:
        registrations = (
            Registration.query
            .filter_by(user_id=user_id)
            .order_by(Registration.created_at.desc(), Registration.id.desc())
            .all()
        )

        per_tournament: Dict[int, Dict[str, int]] = defaultdict(lambda: {'matches': 0, 'wins': 0, 'losses': 0})
        for m in self._matches_for_user(user_id):
            counts = per_tournament[m['tournament_id']]
            counts['matches'] += 1
            if m['result'] == 'won':
                counts['wins'] += 1
            elif m['result'] == 'lost':
                counts['losses'] += 1

        history = []
        for r in registrations:
            counts = per_tournament.get(r.tournament_id, {'matches': 0, 'wins': 0, 'losses': 0})
            history.append({
                'registration': r.to_dict(),
                'tournament': r.tournament.to_dict(),
                'category': r.category.to_dict(),
                'matchesPlayed': counts['matches'],
                'wins': counts['wins'],
                'losses': counts['losses'],
            })
        return history

    # ==================== Player profiles ====================

    def create_player_profile(self, user_id: int, game_id: int, rating: int = None, meta: dict = None) -> PlayerProfile:
        if db.session.get(Game, game_id) is None:
            raise NotFound(f'Game with ID {game_id} not found')
        if PlayerProfile.query.filter_by(user_id=user_id, game_id=game_id).first():
            raise BadRequest('Player profile for this game already exists')

        profile = PlayerProfile(user_id=user_id, game_id=game_id, rating=rating, meta=meta)
        db.session.add(profile)
        commit_or_raise(BadRequest('Player profile for this game already exists'))
        return profile

    def update_player_profile(self, user_id: int, game_id: int, rating: int = None, meta: dict = None) -> PlayerProfile:
        profile = PlayerProfile.query.filter_by(user_id=user_id, game_id=game_id).first()
        if not profile:
            raise NotFound('Player profile not found')
        if rating is not None:
            profile.rating = rating
        if meta is not None:
            profile.meta = meta
        db.session.commit()
        return profile

    def get_player_profiles(self, user_id: int) -> List[PlayerProfile]:
        return PlayerProfile.query.filter_by(user_id=user_id).order_by(PlayerProfile.id).all()
