"""
Tournament progress, completion gate and statistics.
"""
from typing import Dict, List, Optional

from .models import Match, Tournament
from .rules import FINAL, PLACEHOLDER, THIRD_PLACE, round_index, sort_rounds


def completion_rate(completed: int, total: int) -> float:
    if total == 0:
        return 0.0
    return completed / total * 100


def current_round(matches: List[Match]) -> Optional[str]:
    """
    Earliest round (canonical order) that still has a pending match.

    Once everything is completed this is the last round of the bracket.
    """
    if not matches:
        return None
    rounds = sort_rounds(m.round for m in matches)
    for round_name in rounds:
        if any(not m.is_completed for m in matches if m.round == round_name):
            return round_name
    return rounds[-1]


def can_complete(matches: List[Match]) -> bool:
    """True when the bracket exists and every match of every round has a result."""
    return bool(matches) and all(m.is_completed for m in matches)


def progress(tournament: Tournament, matches: List[Match]) -> Dict:
    total = len(matches)
    completed = sum(1 for m in matches if m.is_completed)
    return {
        'tournament_id': tournament.id,
        'sport': tournament.sport,
        'format': tournament.format,
        'status': tournament.status,
        'total_matches': total,
        'completed_matches': completed,
        'pending_matches': total - completed,
        'completion_rate': completion_rate(completed, total),
        'current_round': current_round(matches),
        'ready_matches': sum(1 for m in matches if m.is_ready),
    }


def team_stats(matches: List[Match]) -> Dict[str, Dict]:
    """Per-team record built from completed matches; placeholders are skipped."""
    stats: Dict[str, Dict] = {}

    def entry(team):
        if team not in stats:
            stats[team] = {
                'team': team,
                'matches_played': 0,
                'wins': 0,
                'losses': 0,
                'points_for': 0,
                'points_against': 0,
                'average_score': 0.0,
            }
        return stats[team]

    for match in matches:
        for team in (match.team1, match.team2):
            if team != PLACEHOLDER:
                entry(team)
        if not match.is_completed:
            continue
        for team, scored, conceded in ((match.team1, match.score1, match.score2),
                                       (match.team2, match.score2, match.score1)):
            record = entry(team)
            record['matches_played'] += 1
            record['points_for'] += scored
            record['points_against'] += conceded
            if team == match.winner:
                record['wins'] += 1
            else:
                record['losses'] += 1

    for record in stats.values():
        if record['matches_played']:
            record['average_score'] = record['points_for'] / record['matches_played']
    return stats


def match_statistics(tournament_id: int, matches: List[Match]) -> Dict:
    total = len(matches)
    completed = [m for m in matches if m.is_completed]

    matches_by_round: Dict[str, int] = {}
    points_by_round: Dict[str, List[int]] = {}
    for match in sorted(matches, key=lambda m: round_index(m.round)):
        matches_by_round[match.round] = matches_by_round.get(match.round, 0) + 1
        if match.is_completed:
            points_by_round.setdefault(match.round, []).append(match.score1 + match.score2)

    average_score = {
        round_name: sum(points) / len(points)
        for round_name, points in points_by_round.items()
    }

    return {
        'tournament_id': tournament_id,
        'total_matches': total,
        'completed_matches': len(completed),
        'pending_matches': total - len(completed),
        'matches_by_round': matches_by_round,
        'completion_rate': completion_rate(len(completed), total),
        'average_score': average_score,
        'team_stats': team_stats(matches),
    }


def _single(matches: List[Match], round_name: str) -> Optional[Match]:
    for match in matches:
        if match.round == round_name:
            return match
    return None


def champion(matches: List[Match]) -> Optional[str]:
    final = _single(matches, FINAL)
    if final and final.is_completed:
        return final.winner
    return None


def podium(matches: List[Match]) -> Dict[str, Optional[str]]:
    """Champion, runner-up and third place, None where not yet decided."""
    final = _single(matches, FINAL)
    third = _single(matches, THIRD_PLACE)
    return {
        'champion': final.winner if final and final.is_completed else None,
        'runner_up': final.loser if final and final.is_completed else None,
        'third_place': third.winner if third and third.is_completed else None,
    }
