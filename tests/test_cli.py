"""
Tests for the command line entry point.
"""
import pytest
import sys
import os
import json

import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from knockout.cli import load_teams, main


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Run main() against a throwaway data directory."""
    for name in ('TOURNAMENT_CONFIG', 'TOURNAMENT_DATA_DIR', 'TOURNAMENT_LOG_LEVEL'):
        monkeypatch.delenv(name, raising=False)
    data_dir = str(tmp_path / 'data')

    def run(*args):
        return main(['--data-dir', data_dir, *args])
    return run


@pytest.fixture
def teams_file(tmp_path):
    path = tmp_path / 'teams.yaml'
    path.write_text(yaml.dump([f"T{i}" for i in range(1, 9)]))
    return str(path)


class TestLoadTeams:
    """Tests for reading team files."""

    def test_list(self, teams_file):
        assert load_teams(teams_file) == [f"T{i}" for i in range(1, 9)]

    def test_groups_flattened_in_order(self, tmp_path):
        path = tmp_path / 'groups.yaml'
        path.write_text("pool A:\n  - Hawks\n  - Owls\npool B:\n  - Bears\n  - Wolves\n")
        assert load_teams(str(path)) == ["Hawks", "Owls", "Bears", "Wolves"]

    def test_empty_file(self, tmp_path):
        path = tmp_path / 'empty.yaml'
        path.write_text("")
        assert load_teams(str(path)) == []


class TestCommands:
    """End to end runs of the CLI."""

    def test_create_and_list(self, cli, capsys):
        assert cli('create', 'soccer') == 0
        assert "Created tournament 1" in capsys.readouterr().out
        assert cli('list') == 0
        assert "1\tsoccer\tstandard\tactive" in capsys.readouterr().out

    def test_generate_and_bracket(self, cli, teams_file, capsys):
        cli('create', 'volleyball')
        assert cli('generate', '1', teams_file, '--start', '2026-10-18T09:30') == 0
        out = capsys.readouterr().out
        assert "# first_round" in out
        assert "[1] 09:30  T1 vs T2" in out
        assert "[10] 14:00  TBD vs TBD" in out

    def test_bracket_summary(self, cli, teams_file, capsys):
        cli('create', 'volleyball')
        cli('generate', '1', teams_file)
        capsys.readouterr()
        assert cli('bracket', '1') == 0
        out = capsys.readouterr().out
        assert out.startswith("Tournament 1 (volleyball, standard): 8 teams, 10 matches in 5 rounds")
        assert "Champion" not in out

    def test_result_advances(self, cli, teams_file, capsys):
        cli('create', 'volleyball')
        cli('generate', '1', teams_file)
        capsys.readouterr()
        assert cli('result', '1', '3', '1', 'T1') == 0
        out = capsys.readouterr().out
        assert "Advancement: advanced" in out
        assert "T1 -> match 5 slot 1" in out

    def test_rule_violation_exits_nonzero(self, cli, teams_file, capsys):
        cli('create', 'volleyball')
        cli('generate', '1', teams_file)
        assert cli('result', '1', '25', '26', 'T2') == 1
        assert "outside" in capsys.readouterr().err

    def test_events_flag(self, cli, capsys):
        assert cli('--events', 'create', 'soccer') == 0
        lines = capsys.readouterr().out.strip().splitlines()
        event = json.loads(lines[-1])
        assert event['type'] == 'tournament_updated'
        assert event['action'] == 'created'

    def test_progress(self, cli, teams_file, capsys):
        cli('create', 'table_tennis', '--format', 'rainy')
        cli('generate', '1', teams_file)
        capsys.readouterr()
        assert cli('progress', '1') == 0
        out = capsys.readouterr().out
        assert "Matches: 0/12 completed" in out
        assert "Current round: first_round" in out

    def test_missing_teams_file(self, cli, tmp_path, capsys):
        cli('create', 'soccer')
        assert cli('generate', '1', str(tmp_path / 'missing.yaml')) == 1
        assert "Cannot read teams" in capsys.readouterr().err

    def test_delete_with_bracket_refused(self, cli, teams_file, capsys):
        cli('create', 'soccer')
        cli('generate', '1', teams_file)
        assert cli('delete', '1') == 1
        assert "cannot be deleted" in capsys.readouterr().err

    def test_unknown_tournament(self, cli, capsys):
        assert cli('progress', '7') == 1
        assert "not found" in capsys.readouterr().err
