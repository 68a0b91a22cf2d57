"""
Result validation.

A result is only accepted when all five checks pass; the first failing
check raises and nothing on the match is touched.
"""
from datetime import datetime
from typing import Optional

from .errors import (
    AlreadyCompletedError,
    DrawNotAllowedError,
    InvalidWinnerError,
    ScoreRangeError,
    ScoreWinnerMismatchError,
)
from .models import COMPLETED, PENDING, Match
from .rules import score_range


def _is_score(value) -> bool:
    # bool is an int subclass but never a score
    return isinstance(value, int) and not isinstance(value, bool)


def validate_result(match: Match, score1, score2, winner, sport: str) -> None:
    """
    Check a proposed result against the match state and the sport rules.

    Raises:
        AlreadyCompletedError: match already has a result
        InvalidWinnerError: winner is not one of the two (resolved) teams
        ScoreRangeError: a score is not an integer in the sport's range
        DrawNotAllowedError: both scores are equal
        ScoreWinnerMismatchError: the higher score is not the winner's
    """
    if match.status != PENDING:
        raise AlreadyCompletedError(f"Match {match.id} is already {match.status}")

    if match.is_placeholder:
        raise InvalidWinnerError(
            f"Match {match.id} teams are not determined yet ({match.team1} vs {match.team2})")
    if winner not in (match.team1, match.team2):
        raise InvalidWinnerError(
            f"Winner '{winner}' must be {match.team1} or {match.team2}")

    low, high = score_range(sport)
    for label, score in (('score1', score1), ('score2', score2)):
        if not _is_score(score):
            raise ScoreRangeError(f"{label} must be an integer, got {score!r}")
        if score < low or score > high:
            raise ScoreRangeError(f"{label}={score} is outside {low}-{high} for {sport}")

    if score1 == score2:
        raise DrawNotAllowedError(f"Draws are not allowed ({score1}-{score2})")

    expected = match.team1 if score1 > score2 else match.team2
    if winner != expected:
        raise ScoreWinnerMismatchError(
            f"Score {score1}-{score2} means {expected} won, not {winner}")


def apply_result(match: Match, score1: int, score2: int, winner: str,
                 completed_at: Optional[datetime] = None) -> Match:
    """Record an already validated result; all result fields are set together."""
    match.score1 = score1
    match.score2 = score2
    match.winner = winner
    match.completed_at = completed_at or datetime.now()
    match.status = COMPLETED
    return match


def submit_result(match: Match, score1, score2, winner, sport: str,
                  completed_at: Optional[datetime] = None) -> Match:
    """Validate then apply a result."""
    validate_result(match, score1, score2, winner, sport)
    return apply_result(match, score1, score2, winner, completed_at)
