"""
Single elimination bracket generation.

A bracket is built from a named layout. The layout lists the rounds it
contains and the feeds between them (which round a winner or loser moves
to). First-round pairings follow submission order: team 1 plays team 2,
team 3 plays team 4, and so on. There is no seeding.

Every later match starts with both slots set to the placeholder and is
linked from the matches that feed it, so advancement never has to guess
where a team goes.
"""
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import ValidationError
from .models import Bracket, Match, bracket_sort_key
from .rules import (
    FINAL,
    FIRST_ROUND,
    LOSER_BRACKET,
    PLACEHOLDER,
    QUARTERFINAL,
    SEMIFINAL,
    THIRD_PLACE,
    layout_for,
    match_spacing,
    maximum_teams,
    minimum_teams,
    validate_format,
)

WINNER = 'winner'
LOSER = 'loser'

DEFAULT_DAY_START = '09:30'

LAYOUTS: Dict[str, Dict] = {
    # first round, quarterfinal, semifinal, third place, final
    'standard': {
        'rounds': [FIRST_ROUND, QUARTERFINAL, SEMIFINAL, THIRD_PLACE, FINAL],
        'feeds': [
            (FIRST_ROUND, QUARTERFINAL, WINNER),
            (QUARTERFINAL, SEMIFINAL, WINNER),
            (SEMIFINAL, FINAL, WINNER),
            (SEMIFINAL, THIRD_PLACE, LOSER),
        ],
    },
    # standard plus a loser bracket for first-round losers that decides third place
    'rainy': {
        'rounds': [FIRST_ROUND, QUARTERFINAL, SEMIFINAL, LOSER_BRACKET, THIRD_PLACE, FINAL],
        'feeds': [
            (FIRST_ROUND, QUARTERFINAL, WINNER),
            (FIRST_ROUND, LOSER_BRACKET, LOSER),
            (QUARTERFINAL, SEMIFINAL, WINNER),
            (SEMIFINAL, FINAL, WINNER),
            (LOSER_BRACKET, THIRD_PLACE, WINNER),
        ],
    },
}


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def parse_day_start(value: str) -> time:
    """Parse an 'HH:MM' string."""
    try:
        return datetime.strptime(value, '%H:%M').time()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")


def round_sizes(layout_name: str, team_count: int) -> List[Tuple[str, int]]:
    """
    Number of matches in each round of a layout.

    Later rounds halve the previous one, except the semifinal which always
    has two matches and third place / final which always have one.
    """
    first = team_count // 2
    sizes = {
        FIRST_ROUND: first,
        QUARTERFINAL: first // 2,
        SEMIFINAL: 2,
        LOSER_BRACKET: first // 2,
        THIRD_PLACE: 1,
        FINAL: 1,
    }
    return [(name, sizes[name]) for name in LAYOUTS[layout_name]['rounds']]


def validate_teams(sport: str, teams: Sequence[str]) -> List[str]:
    """Check the team list can fill a bracket for the sport."""
    if teams is None:
        raise ValidationError("Team list is required")
    teams = list(teams)

    for team in teams:
        if not isinstance(team, str) or not team.strip():
            raise ValidationError(f"Invalid team name: {team!r}")
        if team == PLACEHOLDER:
            raise ValidationError(f"'{PLACEHOLDER}' is reserved and cannot be used as a team name")

    duplicates = sorted({t for t in teams if teams.count(t) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate team names: {', '.join(duplicates)}")

    minimum = minimum_teams(sport)
    if len(teams) < minimum:
        raise ValidationError(f"{sport} needs at least {minimum} teams, got {len(teams)}")
    maximum = maximum_teams(sport)
    if len(teams) > maximum:
        raise ValidationError(f"{sport} supports at most {maximum} teams, got {len(teams)}")
    if not is_power_of_two(len(teams)):
        raise ValidationError(f"Number of teams must be a power of 2, got {len(teams)}")

    return teams


def _link(match: Match, outcome: str, target: Match, slot: int):
    if outcome == WINNER:
        match.next_match_id = target.id
        match.next_slot = slot
    else:
        match.loser_match_id = target.id
        match.loser_slot = slot


def wire_round(source: List[Match], target: List[Match], outcome: str, layout_name: str):
    """
    Link every match of source to its destination in target.

    Halving feeds pair matches 1+2, 3+4, ... into one target match each.
    A winner feed between rounds of equal size keeps winners on their line
    in slot 1 and crosses losers over to the neighbouring match's slot 2.

    The crossover is not strict single elimination: in an 8-team bracket a
    quarterfinal loser still plays a semifinal and can go on to win the
    final. It only occurs when the next round has as many matches as the
    current one.
    """
    if len(target) * 2 == len(source):
        for i, match in enumerate(source):
            _link(match, outcome, target[i // 2], i % 2 + 1)
    elif len(target) == len(source) and outcome == WINNER and len(source) > 1:
        for i, match in enumerate(source):
            _link(match, WINNER, target[i], 1)
            _link(match, LOSER, target[(i + 1) % len(target)], 2)
    else:
        round_from = source[0].round if source else '?'
        round_to = target[0].round if target else '?'
        raise ValidationError(
            f"The {layout_name} layout cannot feed {len(source)} {round_from} matches "
            f"into {len(target)} {round_to} matches; use a different number of teams")


def schedule_matches(matches: List[Match], start: datetime, spacing_minutes: int):
    """Assign strictly increasing start times in bracket order."""
    step = timedelta(minutes=spacing_minutes)
    for i, match in enumerate(sorted(matches, key=bracket_sort_key)):
        match.scheduled_at = start + i * step


def generate(sport: str, tournament_format: str, teams: Sequence[str],
             start: Optional[datetime] = None, first_id: int = 1,
             tournament_id: Optional[int] = None,
             day_start: str = DEFAULT_DAY_START) -> Bracket:
    """
    Build the full bracket for a sport and format.

    Args:
        sport: One of the registered sports
        tournament_format: 'standard' or 'rainy'
        teams: Team names in submission order
        start: Start time of the first match (default: today at day_start)
        first_id: Id given to the first match; the rest follow consecutively
        tournament_id: Stamped on every match when known
        day_start: 'HH:MM' used when start is not given

    Returns:
        Bracket with real first-round pairings and linked placeholder rounds
    """
    validate_format(sport, tournament_format)
    teams = validate_teams(sport, teams)
    layout_name = layout_for(sport, tournament_format)
    layout = LAYOUTS[layout_name]

    if start is None:
        start = datetime.combine(date.today(), parse_day_start(day_start))

    rounds: Dict[str, List[Match]] = {}
    next_id = first_id
    for round_name, count in round_sizes(layout_name, len(teams)):
        round_matches = []
        for i in range(count):
            if round_name == FIRST_ROUND:
                team1, team2 = teams[2 * i], teams[2 * i + 1]
            else:
                team1, team2 = PLACEHOLDER, PLACEHOLDER
            round_matches.append(Match(
                id=next_id,
                tournament_id=tournament_id,
                round=round_name,
                match_number=i + 1,
                team1=team1,
                team2=team2,
            ))
            next_id += 1
        rounds[round_name] = round_matches

    for source, target, outcome in layout['feeds']:
        wire_round(rounds[source], rounds[target], outcome, layout_name)

    all_matches = [m for round_matches in rounds.values() for m in round_matches]
    schedule_matches(all_matches, start, match_spacing(sport))

    return Bracket.from_matches(tournament_id, sport, tournament_format, all_matches)


def get_bracket_display(bracket: Bracket) -> Dict:
    """Summary of a bracket for listings."""
    first_round = bracket.round(FIRST_ROUND)
    teams = []
    for match in first_round:
        teams.extend([match.team1, match.team2])
    final = bracket.round(FINAL)
    champion = final[0].winner if final and final[0].is_completed else None
    return {
        'tournament_id': bracket.tournament_id,
        'sport': bracket.sport,
        'format': bracket.format,
        'total_teams': len(teams),
        'teams': teams,
        'total_rounds': len(bracket.rounds),
        'matches_per_round': bracket.matches_per_round(),
        'total_matches': len(bracket.matches),
        'champion': champion,
    }
