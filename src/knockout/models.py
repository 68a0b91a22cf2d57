from datetime import datetime
from typing import Dict, List, Optional

from .rules import PLACEHOLDER, ROUND_ORDER, round_index

ACTIVE = 'active'
COMPLETED = 'completed'
PENDING = 'pending'


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class Tournament:
    def __init__(self, id, sport, format, status=ACTIVE, created_at=None):
        self.id = id
        self.sport = sport
        self.format = format
        self.status = status
        self.created_at = created_at

    @property
    def is_active(self):
        return self.status == ACTIVE

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'sport': self.sport,
            'format': self.format,
            'status': self.status,
            'created_at': _to_iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Tournament':
        return cls(
            id=data['id'],
            sport=data['sport'],
            format=data['format'],
            status=data.get('status', ACTIVE),
            created_at=_from_iso(data.get('created_at')),
        )

    def __repr__(self):
        return f"Tournament(id={self.id}, sport={self.sport}, format={self.format}, status={self.status})"


class Match:
    """
    One bracket match.

    team1/team2 hold PLACEHOLDER until an earlier match resolves them.
    next_match_id/next_slot route the winner, loser_match_id/loser_slot
    route the loser; slots are 1 (team1) or 2 (team2).
    """

    def __init__(self, id, tournament_id, round, match_number, team1=PLACEHOLDER, team2=PLACEHOLDER,
                 status=PENDING, score1=None, score2=None, winner=None, scheduled_at=None,
                 completed_at=None, next_match_id=None, next_slot=None,
                 loser_match_id=None, loser_slot=None):
        self.id = id
        self.tournament_id = tournament_id
        self.round = round
        self.match_number = match_number
        self.team1 = team1
        self.team2 = team2
        self.status = status
        self.score1 = score1
        self.score2 = score2
        self.winner = winner
        self.scheduled_at = scheduled_at
        self.completed_at = completed_at
        self.next_match_id = next_match_id
        self.next_slot = next_slot
        self.loser_match_id = loser_match_id
        self.loser_slot = loser_slot

    @property
    def is_completed(self):
        return self.status == COMPLETED

    @property
    def is_placeholder(self):
        """True while at least one team slot is unresolved."""
        return self.team1 == PLACEHOLDER or self.team2 == PLACEHOLDER

    @property
    def is_ready(self):
        """Both teams known and no result yet."""
        return not self.is_completed and not self.is_placeholder

    @property
    def loser(self):
        if not self.is_completed:
            return None
        return self.team2 if self.winner == self.team1 else self.team1

    def team_in_slot(self, slot: int) -> str:
        return self.team1 if slot == 1 else self.team2

    def set_team(self, slot: int, team: str):
        if slot == 1:
            self.team1 = team
        else:
            self.team2 = team

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'tournament_id': self.tournament_id,
            'round': self.round,
            'match_number': self.match_number,
            'team1': self.team1,
            'team2': self.team2,
            'status': self.status,
            'score1': self.score1,
            'score2': self.score2,
            'winner': self.winner,
            'scheduled_at': _to_iso(self.scheduled_at),
            'completed_at': _to_iso(self.completed_at),
            'next_match_id': self.next_match_id,
            'next_slot': self.next_slot,
            'loser_match_id': self.loser_match_id,
            'loser_slot': self.loser_slot,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Match':
        return cls(
            id=data['id'],
            tournament_id=data.get('tournament_id'),
            round=data['round'],
            match_number=data.get('match_number', 0),
            team1=data.get('team1', PLACEHOLDER),
            team2=data.get('team2', PLACEHOLDER),
            status=data.get('status', PENDING),
            score1=data.get('score1'),
            score2=data.get('score2'),
            winner=data.get('winner'),
            scheduled_at=_from_iso(data.get('scheduled_at')),
            completed_at=_from_iso(data.get('completed_at')),
            next_match_id=data.get('next_match_id'),
            next_slot=data.get('next_slot'),
            loser_match_id=data.get('loser_match_id'),
            loser_slot=data.get('loser_slot'),
        )

    def __repr__(self):
        return (f"Match(id={self.id}, round={self.round}, match_number={self.match_number}, "
                f"teams=({self.team1}, {self.team2}), status={self.status})")


def bracket_sort_key(match: Match):
    """Canonical round order, then position inside the round."""
    return (round_index(match.round), match.match_number)


class Bracket:
    """Read-only view of a tournament's matches grouped by round."""

    def __init__(self, tournament_id, sport, format, rounds):
        self.tournament_id = tournament_id
        self.sport = sport
        self.format = format
        self.rounds = rounds  # list of (round_name, [Match])

    @classmethod
    def from_matches(cls, tournament_id, sport, format, matches: List[Match]) -> 'Bracket':
        grouped = {}
        for match in sorted(matches, key=bracket_sort_key):
            grouped.setdefault(match.round, []).append(match)
        rounds = [(name, grouped[name]) for name in ROUND_ORDER if name in grouped]
        return cls(tournament_id, sport, format, rounds)

    @property
    def round_names(self) -> List[str]:
        return [name for name, _ in self.rounds]

    @property
    def matches(self) -> List[Match]:
        return [match for _, round_matches in self.rounds for match in round_matches]

    def round(self, round_name: str) -> List[Match]:
        for name, round_matches in self.rounds:
            if name == round_name:
                return round_matches
        return []

    def matches_per_round(self) -> Dict[str, int]:
        return {name: len(round_matches) for name, round_matches in self.rounds}

    def to_dict(self) -> Dict:
        return {
            'tournament_id': self.tournament_id,
            'sport': self.sport,
            'format': self.format,
            'rounds': [
                {'name': name, 'matches': [m.to_dict() for m in round_matches]}
                for name, round_matches in self.rounds
            ],
        }

    def __repr__(self):
        return f"Bracket(tournament_id={self.tournament_id}, rounds={self.matches_per_round()})"
