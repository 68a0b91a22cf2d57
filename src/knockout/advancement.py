"""
Advancement of completed matches into later rounds.

Generated brackets link every match to the match and slot its winner (and
for some rounds its loser) moves to. Matches without links, such as records
imported from elsewhere, fall back to scanning the next round in bracket
order for the first open placeholder slot, team1 first.

Placing a team that is already in its destination is a no-op, so calling
advance twice never fills a second slot.
"""
import logging
from typing import Dict, List, Optional, Tuple

from .errors import ValidationError
from .models import Match
from .rules import PLACEHOLDER, loser_round, next_round

logger = logging.getLogger(__name__)

ADVANCED = 'advanced'
TERMINAL = 'terminal'
NO_OPEN_SLOT = 'no_open_slot'

WINNER = 'winner'
LOSER = 'loser'


class Placement:
    """A team written into a destination slot."""

    def __init__(self, match_id, slot, team, role):
        self.match_id = match_id
        self.slot = slot
        self.team = team
        self.role = role

    def to_dict(self) -> Dict:
        return {'match_id': self.match_id, 'slot': self.slot, 'team': self.team, 'role': self.role}

    def __repr__(self):
        return f"Placement(match_id={self.match_id}, slot={self.slot}, team={self.team}, role={self.role})"


class AdvancementOutcome:
    def __init__(self, status, match_id, placements=None, reasons=None):
        self.status = status
        self.match_id = match_id
        self.placements: List[Placement] = placements or []
        self.reasons: List[str] = reasons or []

    @property
    def updated_match_ids(self) -> List[int]:
        return [p.match_id for p in self.placements]

    def to_dict(self) -> Dict:
        return {
            'status': self.status,
            'match_id': self.match_id,
            'placements': [p.to_dict() for p in self.placements],
            'reasons': list(self.reasons),
        }

    def __repr__(self):
        return f"AdvancementOutcome(status={self.status}, match_id={self.match_id}, placements={self.placements})"


def _place_linked(destination: Optional[Match], slot: int, team: str) -> Tuple[bool, Optional[str]]:
    """Write team into a known slot. Returns (placed, reason-if-not)."""
    if destination is None:
        return False, "destination match does not exist"
    current = destination.team_in_slot(slot)
    if current == team:
        return False, f"{team} is already in match {destination.id} slot {slot}"
    if destination.is_completed:
        return False, f"match {destination.id} is already completed"
    if current != PLACEHOLDER:
        return False, f"match {destination.id} slot {slot} is taken by {current}"
    other = destination.team_in_slot(2 if slot == 1 else 1)
    if other == team:
        return False, f"{team} already plays in match {destination.id}"
    destination.set_team(slot, team)
    return True, None


def _place_scanned(candidates: List[Match], team: str) -> Tuple[Optional[Tuple[Match, int]], Optional[str]]:
    """First open slot in bracket order, team1 preferred."""
    candidates = sorted(candidates, key=lambda m: m.match_number)
    for match in candidates:
        if team in (match.team1, match.team2):
            return None, f"{team} is already in match {match.id}"
    for match in candidates:
        if match.is_completed:
            continue
        if match.team1 == PLACEHOLDER:
            match.team1 = team
            return (match, 1), None
        if match.team2 == PLACEHOLDER:
            match.team2 = team
            return (match, 2), None
    return None, "no open slot"


def _routes(match: Match, tournament_format: str):
    """(role, team, linked match id, linked slot, fallback round) for each destination."""
    routes = []
    if match.next_match_id is not None:
        routes.append((WINNER, match.winner, match.next_match_id, match.next_slot, None))
    else:
        winner_round = next_round(match.round, tournament_format)
        if winner_round:
            routes.append((WINNER, match.winner, None, None, winner_round))

    if match.loser_match_id is not None:
        routes.append((LOSER, match.loser, match.loser_match_id, match.loser_slot, None))
    elif match.next_match_id is None:
        # unlinked bracket: losers follow the format's loser progression
        drop_round = loser_round(match.round, tournament_format)
        if drop_round:
            routes.append((LOSER, match.loser, None, None, drop_round))
    return routes


def advance(match: Match, tournament_matches: List[Match], tournament_format: str) -> AdvancementOutcome:
    """
    Move the winner (and routed loser) of a completed match forward.

    Destination matches in tournament_matches are updated in place; the
    caller persists the matches named in the outcome's placements.
    """
    if not match.is_completed or not match.winner:
        raise ValidationError(f"Match {match.id} has no result to advance")

    routes = _routes(match, tournament_format)
    if not routes:
        logger.debug(f"Match {match.id} ({match.round}) is terminal")
        return AdvancementOutcome(TERMINAL, match.id)

    by_id = {m.id: m for m in tournament_matches}
    placements = []
    reasons = []

    for role, team, destination_id, slot, fallback_round in routes:
        if destination_id is not None:
            placed, reason = _place_linked(by_id.get(destination_id), slot, team)
            if placed:
                placements.append(Placement(destination_id, slot, team, role))
        else:
            candidates = [m for m in tournament_matches if m.round == fallback_round]
            found, reason = _place_scanned(candidates, team)
            if found:
                placements.append(Placement(found[0].id, found[1], team, role))
        if reason:
            reasons.append(f"{role} {team}: {reason}")

    for placement in placements:
        logger.info(f"Match {match.id}: {placement.role} {placement.team} -> "
                    f"match {placement.match_id} slot {placement.slot}")

    if placements:
        return AdvancementOutcome(ADVANCED, match.id, placements, reasons)

    logger.warning(f"Match {match.id}: no open slot ({'; '.join(reasons)})")
    return AdvancementOutcome(NO_OPEN_SLOT, match.id, reasons=reasons)
