"""
Tournament operations on top of the store.

TournamentService is the single entry point for callers: it validates
input at the boundary, runs the engine functions, persists through the
store under the right lock and publishes notifications afterwards.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from . import advancement, elimination, progress as tracker, results
from .errors import ConflictError, NotFoundError, StorageError, ValidationError
from .models import ACTIVE, COMPLETED, Bracket, Match, Tournament
from .notifications import (
    CREATED,
    DELETED,
    STATUS_CHANGED,
    UPDATED,
    Notifier,
)
from .rules import validate_format, validate_sport, valid_rounds
from .storage import YamlStore

logger = logging.getLogger(__name__)


class TournamentService:
    def __init__(self, store: YamlStore, notifier: Notifier = None, config: dict = None):
        self.store = store
        self.notifier = notifier or Notifier()
        self.config = config or {}

    @classmethod
    def from_config(cls, config: dict, notifier: Notifier = None) -> 'TournamentService':
        store = YamlStore(config['data_dir'], lock_timeout=config['lock_timeout_seconds'])
        return cls(store, notifier, config)

    # -- lookups ----------------------------------------------------------

    def get_tournament(self, tournament_id: int) -> Tournament:
        tournament = self.store.get_tournament(tournament_id)
        if tournament is None:
            raise NotFoundError(f'Tournament {tournament_id} not found')
        return tournament

    def list_tournaments(self, sport: str = None, status: str = None) -> List[Tournament]:
        if sport:
            validate_sport(sport)
        if status and status not in (ACTIVE, COMPLETED):
            raise ValidationError(f"Unknown tournament status '{status}'")
        return self.store.list_tournaments(sport=sport, status=status)

    def get_active_tournament(self, sport: str) -> Tournament:
        active = self.list_tournaments(sport=sport, status=ACTIVE)
        if not active:
            raise NotFoundError(f'No active {sport} tournament')
        return active[0]

    def get_match(self, match_id: int) -> Match:
        match = self.store.get_match(match_id)
        if match is None:
            raise NotFoundError(f'Match {match_id} not found')
        return match

    def list_matches(self, tournament_id: int, round_name: str = None) -> List[Match]:
        tournament = self.get_tournament(tournament_id)
        if round_name and round_name not in valid_rounds(tournament.sport, tournament.format):
            raise ValidationError(f"Round '{round_name}' does not exist in a {tournament.format} "
                                  f"{tournament.sport} bracket")
        return self.store.list_matches(tournament_id, round_name)

    def pending_matches(self, tournament_id: int) -> List[Match]:
        return [m for m in self.list_matches(tournament_id) if not m.is_completed]

    def get_bracket(self, tournament_id: int) -> Bracket:
        tournament = self.get_tournament(tournament_id)
        matches = self.store.list_matches(tournament_id)
        return Bracket.from_matches(tournament.id, tournament.sport, tournament.format, matches)

    # -- tournament lifecycle ---------------------------------------------

    def create_tournament(self, sport: str, tournament_format: str = 'standard') -> Tournament:
        validate_sport(sport)
        validate_format(sport, tournament_format)

        with self.store.registry_lock():
            if self.store.list_tournaments(sport=sport, status=ACTIVE):
                raise ConflictError(f'An active {sport} tournament already exists')
            tournament = self.store.create_tournament(sport, tournament_format)

        logger.info(f'Created {tournament!r}')
        self.notifier.tournament_updated(tournament, CREATED)
        return tournament

    def generate_bracket(self, tournament_id: int, teams: Sequence[str],
                         start: Optional[datetime] = None) -> Bracket:
        """Generate and persist the bracket of a tournament that has none yet."""
        self.get_tournament(tournament_id)

        with self.store.tournament_lock(tournament_id):
            # re-read under the lock: a delete or complete may have won the race
            tournament = self.get_tournament(tournament_id)
            if not tournament.is_active:
                raise ConflictError(f'Tournament {tournament_id} is {tournament.status}')
            if self.store.count_matches(tournament_id):
                raise ConflictError(f'Tournament {tournament_id} already has a bracket')

            day_start = self.config.get('day_start_time', elimination.DEFAULT_DAY_START)
            # dry run validates teams before any id is reserved
            draft = elimination.generate(tournament.sport, tournament.format, teams,
                                         start=start, day_start=day_start)
            first_id = self.store.allocate_match_ids(tournament_id, len(draft.matches))
            bracket = elimination.generate(tournament.sport, tournament.format, teams,
                                           start=start, first_id=first_id,
                                           tournament_id=tournament_id, day_start=day_start)
            self.store.create_matches(tournament_id, bracket.matches)

        logger.info(f'Generated bracket for tournament {tournament_id}: {bracket.matches_per_round()}')
        for match in bracket.matches:
            self.notifier.match_updated(match, CREATED)
        self.notifier.tournament_updated(tournament, UPDATED)
        return bracket

    def complete_tournament(self, tournament_id: int) -> Tournament:
        self.get_tournament(tournament_id)

        with self.store.tournament_lock(tournament_id):
            tournament = self.get_tournament(tournament_id)
            if not tournament.is_active:
                raise ConflictError(f'Tournament {tournament_id} is already {tournament.status}')
            matches = self.store.list_matches(tournament_id)
            if not tracker.can_complete(matches):
                pending = sum(1 for m in matches if not m.is_completed)
                raise ConflictError(
                    f'Tournament {tournament_id} still has {pending} pending match(es)')
            tournament.status = COMPLETED
            self.store.update_tournament(tournament)

        logger.info(f'Tournament {tournament_id} completed, champion {tracker.champion(matches)}')
        self.notifier.tournament_updated(tournament, STATUS_CHANGED)
        return tournament

    def delete_tournament(self, tournament_id: int):
        tournament = self.get_tournament(tournament_id)
        # veto and registry removal under one lock so no bracket can appear in between
        with self.store.tournament_lock(tournament_id):
            count = self.store.count_matches(tournament_id)
            if count:
                raise ConflictError(
                    f'Tournament {tournament_id} has {count} matches and cannot be deleted')
            self.store.delete_tournament(tournament_id)
        self.store.remove_tournament_files(tournament_id)
        logger.info(f'Deleted {tournament!r}')
        self.notifier.tournament_updated(tournament, DELETED)

    # -- results and advancement ------------------------------------------

    def _load_for_match(self, match_id: int) -> Tuple[Tournament, List[Match], Match]:
        tournament_id = self.store.find_tournament_id_for_match(match_id)
        if tournament_id is None:
            raise NotFoundError(f'Match {match_id} not found')
        tournament = self.get_tournament(tournament_id)
        matches = self.store.list_matches(tournament_id)
        for match in matches:
            if match.id == match_id:
                return tournament, matches, match
        raise NotFoundError(f'Match {match_id} not found')

    def _advance_locked(self, tournament: Tournament, matches: List[Match],
                        match: Match) -> advancement.AdvancementOutcome:
        outcome = advancement.advance(match, matches, tournament.format)
        if outcome.placements:
            by_id = {m.id: m for m in matches}
            updated = [by_id[match_id] for match_id in outcome.updated_match_ids]
            self.store.update_matches(tournament.id, updated)
            for destination in updated:
                self.notifier.match_updated(destination, UPDATED)
        return outcome

    def submit_result(self, match_id: int, score1: int, score2: int,
                      winner: str) -> Tuple[Match, advancement.AdvancementOutcome]:
        """
        Record a result and advance the teams.

        The result is saved before advancement runs; an advancement that
        cannot place a team, or fails to save, is reported in the outcome
        but the result stays recorded.
        """
        tournament_id = self.store.find_tournament_id_for_match(match_id)
        if tournament_id is None:
            raise NotFoundError(f'Match {match_id} not found')

        with self.store.tournament_lock(tournament_id):
            tournament, matches, match = self._load_for_match(match_id)
            if not tournament.is_active:
                raise ConflictError(f'Tournament {tournament.id} is {tournament.status}')

            results.submit_result(match, score1, score2, winner, tournament.sport)
            self.store.update_match(match)
            logger.info(f'Match {match.id} ({match.round}) result {score1}-{score2}, winner {winner}')

            try:
                outcome = self._advance_locked(tournament, matches, match)
            except StorageError as e:
                logger.exception(f'Advancement of match {match.id} could not be saved')
                outcome = advancement.AdvancementOutcome(
                    advancement.NO_OPEN_SLOT, match.id, reasons=[str(e)])

        self.notifier.match_result(match, outcome)
        return match, outcome

    def advance(self, match_id: int) -> advancement.AdvancementOutcome:
        """Re-run advancement for a completed match; safe to repeat."""
        tournament_id = self.store.find_tournament_id_for_match(match_id)
        if tournament_id is None:
            raise NotFoundError(f'Match {match_id} not found')
        with self.store.tournament_lock(tournament_id):
            tournament, matches, match = self._load_for_match(match_id)
            return self._advance_locked(tournament, matches, match)

    # -- progress ---------------------------------------------------------

    def progress(self, tournament_id: int) -> Dict:
        tournament = self.get_tournament(tournament_id)
        matches = self.store.list_matches(tournament_id)
        report = tracker.progress(tournament, matches)
        report['can_complete'] = tracker.can_complete(matches)
        report.update(tracker.podium(matches))
        return report

    def team_stats(self, tournament_id: int) -> Dict[str, Dict]:
        self.get_tournament(tournament_id)
        return tracker.team_stats(self.store.list_matches(tournament_id))

    def match_statistics(self, tournament_id: int) -> Dict:
        self.get_tournament(tournament_id)
        return tracker.match_statistics(tournament_id, self.store.list_matches(tournament_id))
