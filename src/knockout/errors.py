"""
Error taxonomy for the bracket engine.

Every error carries a stable ``code`` so an outer layer (CLI, web handler)
can map it without string matching on messages.
"""


class TournamentError(Exception):
    """Base class for all engine errors."""
    code = 'TOURNAMENT_ERROR'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class ValidationError(TournamentError):
    """Malformed or out-of-range input."""
    code = 'VALIDATION_ERROR'


class InvalidFormatError(ValidationError):
    """Format not available for the requested sport."""
    code = 'INVALID_FORMAT'


class NotFoundError(TournamentError):
    """Referenced tournament or match does not exist."""
    code = 'NOT_FOUND'


class ConflictError(TournamentError):
    """Business-rule conflict, e.g. a second active tournament for a sport."""
    code = 'CONFLICT'


class StorageError(TournamentError):
    """Persistence collaborator failed (unreadable file, lock timeout)."""
    code = 'STORAGE_ERROR'


class RuleViolation(TournamentError):
    """A submitted result was rejected by the result validator."""
    code = 'RULE_VIOLATION'


class AlreadyCompletedError(RuleViolation):
    code = 'MATCH_ALREADY_COMPLETED'


class InvalidWinnerError(RuleViolation):
    code = 'INVALID_WINNER'


class ScoreRangeError(RuleViolation):
    code = 'SCORE_OUT_OF_RANGE'


class DrawNotAllowedError(RuleViolation):
    code = 'DRAW_NOT_ALLOWED'


class ScoreWinnerMismatchError(RuleViolation):
    code = 'SCORE_WINNER_MISMATCH'
