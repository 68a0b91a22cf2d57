"""
Tests for TournamentService: lifecycle, results and whole tournaments.
"""
import pytest
import sys
import os
import threading

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from knockout.errors import (
    AlreadyCompletedError,
    ConflictError,
    InvalidFormatError,
    NotFoundError,
    ScoreRangeError,
    StorageError,
    ValidationError,
)
from knockout.notifications import MATCH_RESULT, MATCH_UPDATED, TOURNAMENT_UPDATED
from knockout.service import TournamentService
from knockout.storage import YamlStore


class TestTournamentLifecycle:
    """Creating, completing and deleting tournaments."""

    def test_create(self, service, event_log):
        tournament = service.create_tournament('soccer')
        assert tournament.format == 'standard'
        assert service.get_active_tournament('soccer').id == tournament.id
        events = event_log.of_type(TOURNAMENT_UPDATED)
        assert [e.action for e in events] == ['created']

    def test_one_active_per_sport(self, service):
        service.create_tournament('soccer')
        with pytest.raises(ConflictError):
            service.create_tournament('soccer')
        service.create_tournament('volleyball')

    def test_invalid_sport_and_format(self, service):
        with pytest.raises(ValidationError):
            service.create_tournament('cricket')
        with pytest.raises(InvalidFormatError):
            service.create_tournament('soccer', 'rainy')

    def test_unknown_tournament(self, service):
        with pytest.raises(NotFoundError):
            service.get_tournament(5)
        with pytest.raises(NotFoundError):
            service.get_active_tournament('soccer')

    def test_list_validates_filters(self, service):
        with pytest.raises(ValidationError):
            service.list_tournaments(status='archived')

    def test_delete_without_matches(self, service, event_log):
        tournament = service.create_tournament('soccer')
        service.delete_tournament(tournament.id)
        assert service.list_tournaments() == []
        assert event_log.events[-1].action == 'deleted'

    def test_delete_with_matches_vetoed(self, service, volleyball_tournament):
        with pytest.raises(ConflictError):
            service.delete_tournament(volleyball_tournament.id)
        assert service.get_tournament(volleyball_tournament.id).is_active

    def test_complete_with_pending_matches(self, service, volleyball_tournament):
        with pytest.raises(ConflictError):
            service.complete_tournament(volleyball_tournament.id)

    def test_complete_without_bracket(self, service):
        tournament = service.create_tournament('soccer')
        with pytest.raises(ConflictError):
            service.complete_tournament(tournament.id)


class TestBracketGeneration:
    """Generating and reading brackets through the service."""

    def test_generate(self, service, volleyball_tournament, event_log):
        bracket = service.get_bracket(volleyball_tournament.id)
        assert bracket.matches_per_round()['first_round'] == 4
        assert len(event_log.of_type(MATCH_UPDATED)) == 10
        assert event_log.of_type(TOURNAMENT_UPDATED)[-1].action == 'updated'

    def test_generate_twice(self, service, volleyball_tournament, eight_teams):
        with pytest.raises(ConflictError):
            service.generate_bracket(volleyball_tournament.id, eight_teams)

    def test_rejected_teams_reserve_no_ids(self, service, store):
        tournament = service.create_tournament('soccer')
        with pytest.raises(ValidationError):
            service.generate_bracket(tournament.id, [f"T{i}" for i in range(1, 8)])
        assert store.count_matches(tournament.id) == 0
        assert store.allocate_match_ids(tournament.id, 1) == 1

    def test_match_ids_unique_across_tournaments(self, service, volleyball_tournament,
                                                 eight_teams, start_time):
        soccer = service.create_tournament('soccer')
        bracket = service.generate_bracket(soccer.id, eight_teams, start=start_time)
        assert [m.id for m in bracket.matches] == list(range(11, 21))
        assert service.get_match(11).tournament_id == soccer.id

    def test_list_matches_by_round(self, service, volleyball_tournament):
        assert len(service.list_matches(volleyball_tournament.id, 'semifinal')) == 2
        with pytest.raises(ValidationError):
            service.list_matches(volleyball_tournament.id, 'loser_bracket')

    def test_pending_matches(self, service, volleyball_tournament):
        assert len(service.pending_matches(volleyball_tournament.id)) == 10
        service.submit_result(1, 25, 20, "T1")
        pending = service.pending_matches(volleyball_tournament.id)
        assert [m.id for m in pending] == list(range(2, 11))

    def test_day_start_from_config(self, store, eight_teams):
        service = TournamentService(store, config={'day_start_time': '13:00'})
        tournament = service.create_tournament('soccer')
        bracket = service.generate_bracket(tournament.id, eight_teams)
        assert bracket.matches[0].scheduled_at.hour == 13


class TestResults:
    """Submitting results through the service."""

    def test_submit_advances_and_persists(self, service, volleyball_tournament):
        match, outcome = service.submit_result(1, 3, 1, "T1")
        assert match.winner == "T1"
        assert outcome.status == 'advanced'
        assert service.get_match(1).status == 'completed'
        assert service.get_match(5).team1 == "T1"

    def test_result_event(self, service, volleyball_tournament, event_log):
        service.submit_result(1, 3, 1, "T1")
        event = event_log.of_type(MATCH_RESULT)[-1]
        assert event.action == 'result_updated'
        assert event.data['winner'] == "T1"
        assert event.data['advancement']['placements'][0]['match_id'] == 5
        assert event_log.of_type(MATCH_UPDATED)[-1].data['id'] == 5

    def test_already_completed_leaves_result(self, service, volleyball_tournament):
        service.submit_result(1, 3, 1, "T1")
        with pytest.raises(AlreadyCompletedError):
            service.submit_result(1, 1, 3, "T2")
        stored = service.get_match(1)
        assert (stored.score1, stored.score2, stored.winner) == (3, 1, "T1")

    def test_rejected_result_not_saved(self, service, volleyball_tournament):
        with pytest.raises(ScoreRangeError):
            service.submit_result(1, 25, 26, "T2")
        assert service.get_match(1).status == 'pending'

    def test_unknown_match(self, service, volleyball_tournament):
        with pytest.raises(NotFoundError):
            service.submit_result(999, 3, 1, "T1")

    def test_advance_is_idempotent(self, service, volleyball_tournament):
        service.submit_result(1, 3, 1, "T1")
        outcome = service.advance(1)
        assert outcome.status == 'no_open_slot'
        quarterfinal = service.get_match(5)
        assert (quarterfinal.team1, quarterfinal.team2) == ("T1", "TBD")

    def test_advancement_save_failure_keeps_result(self, service, store, volleyball_tournament,
                                                   monkeypatch):
        original = store.update_matches

        def failing(tournament_id, updated):
            if any(m.id != 1 for m in updated):
                raise StorageError("disk full")
            return original(tournament_id, updated)

        monkeypatch.setattr(store, 'update_matches', failing)
        match, outcome = service.submit_result(1, 3, 1, "T1")
        assert outcome.status == 'no_open_slot'
        assert "disk full" in outcome.reasons[0]
        monkeypatch.undo()
        assert service.get_match(1).winner == "T1"
        assert service.get_match(5).team1 == "TBD"


@pytest.mark.slow
class TestWholeTournaments:
    """Play brackets to the end for every sport and format."""

    @pytest.mark.parametrize('sport,fmt', [
        ('volleyball', 'standard'),
        ('table_tennis', 'standard'),
        ('table_tennis', 'rainy'),
        ('soccer', 'standard'),
    ])
    def test_play_to_champion(self, service, play_all, eight_teams, start_time, sport, fmt):
        tournament = service.create_tournament(sport, fmt)
        service.generate_bracket(tournament.id, eight_teams, start=start_time)
        play_all(tournament.id, sport)

        report = service.progress(tournament.id)
        assert report['completion_rate'] == 100.0
        assert report['can_complete']
        assert report['champion'] == "T1"
        assert report['third_place'] is not None

        completed = service.complete_tournament(tournament.id)
        assert completed.status == 'completed'
        with pytest.raises(ConflictError):
            service.complete_tournament(tournament.id)
        # sport is free again
        service.create_tournament(sport, fmt)

    def test_team2_always_wins(self, service, play_all, sixteen_teams, start_time):
        tournament = service.create_tournament('soccer')
        service.generate_bracket(tournament.id, sixteen_teams, start=start_time)
        play_all(tournament.id, 'soccer', pick_team1=False)
        report = service.progress(tournament.id)
        assert report['can_complete']
        assert report['champion'] is not None
        stats = service.team_stats(tournament.id)
        assert sum(s['wins'] for s in stats.values()) == 16

    def test_results_rejected_after_completion(self, service, play_all, volleyball_tournament):
        play_all(volleyball_tournament.id, 'volleyball')
        service.complete_tournament(volleyball_tournament.id)
        with pytest.raises(ConflictError):
            service.submit_result(1, 25, 20, "T1")

    def test_sibling_results_in_parallel(self, tmp_path, eight_teams, start_time):
        data_dir = str(tmp_path / 'data')
        setup = TournamentService(YamlStore(data_dir))
        tournament = setup.create_tournament('volleyball')
        setup.generate_bracket(tournament.id, eight_teams, start=start_time)

        errors = []

        def submit(match_id, winner):
            # one store per thread, like separate processes
            worker = TournamentService(YamlStore(data_dir))
            try:
                worker.submit_result(match_id, 25, 20, winner)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=submit, args=(1, "T1")),
                   threading.Thread(target=submit, args=(2, "T3"))]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        quarterfinal = setup.get_match(5)
        assert (quarterfinal.team1, quarterfinal.team2) == ("T1", "T3")


@pytest.mark.slow
class TestConcurrentAccess:
    """Readers and writers of one data directory from several threads."""

    def test_progress_during_submissions(self, tmp_path, eight_teams, start_time):
        data_dir = str(tmp_path / 'data')
        writer = TournamentService(YamlStore(data_dir))
        tournament = writer.create_tournament('volleyball')
        writer.generate_bracket(tournament.id, eight_teams, start=start_time)
        reader = TournamentService(YamlStore(data_dir))

        totals = []
        stop = threading.Event()

        def poll():
            while not stop.is_set():
                totals.append(reader.progress(tournament.id)['total_matches'])

        thread = threading.Thread(target=poll)
        thread.start()
        try:
            for match_id in range(1, 5):
                writer.submit_result(match_id, 25, 20, writer.get_match(match_id).team1)
        finally:
            stop.set()
            thread.join()

        assert totals
        assert set(totals) == {10}

    def test_generate_cannot_slip_into_delete(self, service, store, tmp_path, eight_teams,
                                              start_time, monkeypatch):
        tournament = service.create_tournament('soccer')
        outcome = []

        def generate():
            other = TournamentService(YamlStore(str(tmp_path / 'data')))
            try:
                outcome.append(other.generate_bracket(tournament.id, eight_teams, start=start_time))
            except Exception as e:
                outcome.append(e)

        original = store.delete_tournament
        thread = threading.Thread(target=generate)

        def delete_with_rival(tournament_id):
            # the rival has read the tournament and now waits for the lock
            thread.start()
            thread.join(timeout=0.5)
            return original(tournament_id)

        monkeypatch.setattr(store, 'delete_tournament', delete_with_rival)
        service.delete_tournament(tournament.id)
        thread.join()

        assert len(outcome) == 1
        assert isinstance(outcome[0], NotFoundError)
        assert service.list_tournaments() == []
        assert store.count_matches(tournament.id) == 0

    def test_complete_only_once(self, service, play_all, volleyball_tournament, event_log):
        play_all(volleyball_tournament.id, 'volleyball')
        outcome = []

        def complete():
            try:
                outcome.append(service.complete_tournament(volleyball_tournament.id))
            except ConflictError as e:
                outcome.append(e)

        threads = [threading.Thread(target=complete) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(isinstance(o, ConflictError) for o in outcome) == 1
        changes = [e for e in event_log.of_type(TOURNAMENT_UPDATED) if e.action == 'status_changed']
        assert len(changes) == 1
