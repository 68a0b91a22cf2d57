"""
Per-sport rule table.

Everything sport specific lives here: team limits, score ranges, match
spacing and which bracket layouts a sport may use. The generator and the
validator only ever ask this module, so registering a new sport is a single
entry in SPORT_RULES.
"""
from typing import Dict, List, Optional, Set, Tuple

from .errors import InvalidFormatError, ValidationError

# Sports
VOLLEYBALL = 'volleyball'
TABLE_TENNIS = 'table_tennis'
SOCCER = 'soccer'

# Formats
STANDARD = 'standard'
RAINY = 'rainy'

# Rounds
FIRST_ROUND = 'first_round'
QUARTERFINAL = 'quarterfinal'
SEMIFINAL = 'semifinal'
LOSER_BRACKET = 'loser_bracket'
THIRD_PLACE = 'third_place'
FINAL = 'final'

# Canonical display / scheduling order of rounds
ROUND_ORDER = [FIRST_ROUND, QUARTERFINAL, SEMIFINAL, LOSER_BRACKET, THIRD_PLACE, FINAL]

# Unresolved team slot
PLACEHOLDER = 'TBD'

SPORTS = (VOLLEYBALL, TABLE_TENNIS, SOCCER)
FORMATS = (STANDARD, RAINY)

# Winner progression, shared by every sport
_NEXT_ROUND = {
    FIRST_ROUND: QUARTERFINAL,
    QUARTERFINAL: SEMIFINAL,
    SEMIFINAL: FINAL,
    LOSER_BRACKET: THIRD_PLACE,
}

# Loser progression per format
_LOSER_ROUND = {
    STANDARD: {SEMIFINAL: THIRD_PLACE},
    RAINY: {FIRST_ROUND: LOSER_BRACKET},
}


class SportRules:
    """Static configuration for one sport."""

    def __init__(self, sport, minimum_teams, maximum_teams, score_range,
                 match_spacing_minutes, layouts):
        self.sport = sport
        self.minimum_teams = minimum_teams
        self.maximum_teams = maximum_teams
        self.score_range = score_range
        self.match_spacing_minutes = match_spacing_minutes
        self.layouts = layouts  # format -> layout name

    def __repr__(self):
        return (f"SportRules(sport={self.sport}, teams={self.minimum_teams}-{self.maximum_teams}, "
                f"scores={self.score_range}, formats={sorted(self.layouts)})")


SPORT_RULES: Dict[str, SportRules] = {
    VOLLEYBALL: SportRules(
        VOLLEYBALL, minimum_teams=8, maximum_teams=16, score_range=(0, 25),
        match_spacing_minutes=30, layouts={STANDARD: 'standard'},
    ),
    TABLE_TENNIS: SportRules(
        TABLE_TENNIS, minimum_teams=8, maximum_teams=16, score_range=(0, 11),
        match_spacing_minutes=20, layouts={STANDARD: 'standard', RAINY: 'rainy'},
    ),
    SOCCER: SportRules(
        SOCCER, minimum_teams=8, maximum_teams=16, score_range=(0, 20),
        match_spacing_minutes=45, layouts={STANDARD: 'standard'},
    ),
}


def get_rules(sport: str) -> SportRules:
    """Return the rules for a sport, raising ValidationError for unknown sports."""
    rules = SPORT_RULES.get(sport)
    if rules is None:
        raise ValidationError(f"Unknown sport '{sport}'. Expected one of: {', '.join(SPORTS)}")
    return rules


def validate_sport(sport: str) -> str:
    get_rules(sport)
    return sport


def validate_format(sport: str, tournament_format: str) -> str:
    """Check the format is known and available for the sport."""
    rules = get_rules(sport)
    if tournament_format not in FORMATS:
        raise ValidationError(
            f"Unknown format '{tournament_format}'. Expected one of: {', '.join(FORMATS)}")
    if tournament_format not in rules.layouts:
        raise InvalidFormatError(f"Format '{tournament_format}' is not available for {sport}")
    return tournament_format


def minimum_teams(sport: str) -> int:
    return get_rules(sport).minimum_teams


def maximum_teams(sport: str) -> int:
    return get_rules(sport).maximum_teams


def score_range(sport: str) -> Tuple[int, int]:
    return get_rules(sport).score_range


def match_spacing(sport: str) -> int:
    """Minutes between consecutive scheduled matches."""
    return get_rules(sport).match_spacing_minutes


def layout_for(sport: str, tournament_format: str) -> str:
    validate_format(sport, tournament_format)
    return get_rules(sport).layouts[tournament_format]


def valid_rounds(sport: str, tournament_format: str) -> Set[str]:
    """Rounds a bracket of this sport and format can contain."""
    validate_format(sport, tournament_format)
    rounds = {FIRST_ROUND, QUARTERFINAL, SEMIFINAL, THIRD_PLACE, FINAL}
    if tournament_format == RAINY:
        rounds.add(LOSER_BRACKET)
    return rounds


def next_round(current_round: str, tournament_format: str) -> Optional[str]:
    """Round the winner of current_round moves to, or None if terminal."""
    if current_round == LOSER_BRACKET and tournament_format != RAINY:
        return None
    return _NEXT_ROUND.get(current_round)


def loser_round(current_round: str, tournament_format: str) -> Optional[str]:
    """Round the loser of current_round drops into, or None if eliminated."""
    return _LOSER_ROUND.get(tournament_format, {}).get(current_round)


def round_index(round_name: str) -> int:
    """Position of a round in canonical order."""
    try:
        return ROUND_ORDER.index(round_name)
    except ValueError:
        raise ValidationError(f"Unknown round '{round_name}'")


def sort_rounds(round_names) -> List[str]:
    return sorted(set(round_names), key=round_index)
