"""
Shared pytest fixtures for the knockout engine tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - skip threaded / whole-tournament runs
"""
import pytest
import sys
import os
from datetime import datetime

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from knockout.elimination import generate
from knockout.notifications import EventLog, Notifier
from knockout.service import TournamentService
from knockout.storage import YamlStore


@pytest.fixture
def eight_teams():
    return [f"T{i}" for i in range(1, 9)]


@pytest.fixture
def sixteen_teams():
    return [f"T{i}" for i in range(1, 17)]


@pytest.fixture
def start_time():
    return datetime(2026, 10, 18, 9, 30)


@pytest.fixture
def volleyball_bracket(eight_teams, start_time):
    """Freshly generated 8-team volleyball bracket, ids starting at 1."""
    return generate('volleyball', 'standard', eight_teams, start=start_time, tournament_id=1)


@pytest.fixture
def rainy_bracket(eight_teams, start_time):
    return generate('table_tennis', 'rainy', eight_teams, start=start_time, tournament_id=1)


@pytest.fixture
def store(tmp_path):
    return YamlStore(str(tmp_path / 'data'), lock_timeout=5)


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def service(store, event_log):
    notifier = Notifier()
    notifier.subscribe(event_log)
    return TournamentService(store, notifier, {'day_start_time': '09:30'})


@pytest.fixture
def volleyball_tournament(service, eight_teams, start_time):
    """Active volleyball tournament with its bracket generated."""
    tournament = service.create_tournament('volleyball', 'standard')
    service.generate_bracket(tournament.id, eight_teams, start=start_time)
    return tournament


WINNING_SCORES = {
    'volleyball': (25, 20),
    'table_tennis': (11, 7),
    'soccer': (3, 1),
}


@pytest.fixture
def play_all(service):
    """Play every match in bracket order until none is ready."""
    def play(tournament_id, sport, pick_team1=True):
        high, low = WINNING_SCORES[sport]
        while True:
            ready = [m for m in service.list_matches(tournament_id) if m.is_ready]
            if not ready:
                return
            for match in ready:
                if pick_team1:
                    service.submit_result(match.id, high, low, match.team1)
                else:
                    service.submit_result(match.id, low, high, match.team2)
    return play
