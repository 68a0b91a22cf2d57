"""Command line entry point for running knockout tournaments."""

import argparse
import json
import logging
import sys
from datetime import datetime

import yaml

from .config import configure_logging, load_config
from .elimination import get_bracket_display
from .errors import TournamentError, ValidationError
from .notifications import EventLog
from .rules import FORMATS, SPORTS, STANDARD
from .service import TournamentService

logger = logging.getLogger(__name__)


def load_teams(file_path):
    """
    Read team names from YAML.

    Accepts a plain list, or a mapping of group name to list which is
    flattened in file order.
    """
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file)
    if not data:
        return []
    if isinstance(data, list):
        return [str(team) for team in data]
    if isinstance(data, dict):
        teams = []
        for group_teams in data.values():
            teams.extend(str(team) for team in (group_teams or []))
        return teams
    raise ValidationError(f'{file_path} must contain a list of teams or a mapping of groups to teams')


def print_bracket_summary(bracket):
    summary = get_bracket_display(bracket)
    print(f"Tournament {summary['tournament_id']} ({summary['sport']}, {summary['format']}): "
          f"{summary['total_teams']} teams, {summary['total_matches']} matches "
          f"in {summary['total_rounds']} rounds")
    if summary['champion']:
        print(f"Champion: {summary['champion']}")
    print()


def print_bracket(bracket):
    first = True
    for round_name, matches in bracket.rounds:
        if not first:
            print()
        print(f"# {round_name}")
        for match in matches:
            when = match.scheduled_at.strftime('%H:%M') if match.scheduled_at else '--:--'
            line = f"  [{match.id}] {when}  {match.team1} vs {match.team2}"
            if match.is_completed:
                line += f"  {match.score1}-{match.score2}  winner: {match.winner}"
            print(line)
        first = False


def print_progress(report):
    print(f"Tournament {report['tournament_id']} ({report['sport']}, {report['format']}) - {report['status']}")
    print(f"  Matches: {report['completed_matches']}/{report['total_matches']} completed "
          f"({report['completion_rate']:.1f}%)")
    print(f"  Current round: {report['current_round']}")
    print(f"  Ready to play: {report['ready_matches']}")
    if report.get('champion'):
        print(f"  Champion: {report['champion']}")
        print(f"  Runner-up: {report['runner_up']}")
    if report.get('third_place'):
        print(f"  Third place: {report['third_place']}")


def build_parser():
    parser = argparse.ArgumentParser(description='Run single elimination tournaments.')
    parser.add_argument('--config', help='Path to a YAML settings file')
    parser.add_argument('--data-dir', help='Override the data directory')
    parser.add_argument('--events', action='store_true', help='Print published events as JSON')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('create', help='Create a tournament')
    p.add_argument('sport', choices=SPORTS)
    p.add_argument('--format', dest='tournament_format', choices=FORMATS, default=STANDARD)

    p = sub.add_parser('generate', help='Generate the bracket from a YAML team file')
    p.add_argument('tournament_id', type=int)
    p.add_argument('teams_file')
    p.add_argument('--start', help='Start of the first match, e.g. 2026-10-18T09:30')

    p = sub.add_parser('result', help='Submit a match result')
    p.add_argument('match_id', type=int)
    p.add_argument('score1', type=int)
    p.add_argument('score2', type=int)
    p.add_argument('winner')

    p = sub.add_parser('advance', help='Re-run advancement for a completed match')
    p.add_argument('match_id', type=int)

    for name, help_text in (('bracket', 'Show the bracket'),
                            ('progress', 'Show tournament progress'),
                            ('stats', 'Show team and match statistics'),
                            ('complete', 'Mark a finished tournament completed'),
                            ('delete', 'Delete a tournament without matches')):
        p = sub.add_parser(name, help=help_text)
        p.add_argument('tournament_id', type=int)

    p = sub.add_parser('list', help='List tournaments')
    p.add_argument('--sport', choices=SPORTS)
    p.add_argument('--status', choices=('active', 'completed'))

    return parser


def run(args, service):
    if args.command == 'create':
        tournament = service.create_tournament(args.sport, args.tournament_format)
        print(f"Created tournament {tournament.id} ({tournament.sport}, {tournament.format})")
    elif args.command == 'generate':
        start = None
        if args.start:
            try:
                start = datetime.fromisoformat(args.start)
            except ValueError:
                raise ValidationError(f"Invalid --start '{args.start}'")
        try:
            teams = load_teams(args.teams_file)
        except (OSError, yaml.YAMLError) as e:
            raise ValidationError(f"Cannot read teams from {args.teams_file}: {e}")
        print_bracket(service.generate_bracket(args.tournament_id, teams, start=start))
    elif args.command == 'result':
        match, outcome = service.submit_result(args.match_id, args.score1, args.score2, args.winner)
        print(f"Match {match.id}: {match.team1} {match.score1}-{match.score2} {match.team2}, "
              f"winner {match.winner}")
        print(f"Advancement: {outcome.status}")
        for placement in outcome.placements:
            print(f"  {placement.team} -> match {placement.match_id} slot {placement.slot}")
    elif args.command == 'advance':
        outcome = service.advance(args.match_id)
        print(f"Advancement: {outcome.status}")
        for reason in outcome.reasons:
            print(f"  {reason}")
    elif args.command == 'bracket':
        bracket = service.get_bracket(args.tournament_id)
        print_bracket_summary(bracket)
        print_bracket(bracket)
    elif args.command == 'progress':
        print_progress(service.progress(args.tournament_id))
    elif args.command == 'stats':
        print(json.dumps(service.match_statistics(args.tournament_id), indent=2))
    elif args.command == 'complete':
        tournament = service.complete_tournament(args.tournament_id)
        print(f"Tournament {tournament.id} is {tournament.status}")
    elif args.command == 'delete':
        service.delete_tournament(args.tournament_id)
        print(f"Deleted tournament {args.tournament_id}")
    elif args.command == 'list':
        tournaments = service.list_tournaments(sport=args.sport, status=args.status)
        if not tournaments:
            print("No tournaments.")
        for tournament in tournaments:
            print(f"{tournament.id}\t{tournament.sport}\t{tournament.format}\t{tournament.status}")


def main(argv=None):
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except TournamentError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    if args.data_dir:
        config['data_dir'] = args.data_dir
    configure_logging(config)

    service = TournamentService.from_config(config)
    event_log = EventLog()
    if args.events:
        service.notifier.subscribe(event_log)

    try:
        run(args, service)
    except TournamentError as e:
        logger.debug(f'{args.command} failed: {e.code}')
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    for event in event_log.events:
        print(json.dumps(event.to_dict()))
    return 0


if __name__ == '__main__':
    sys.exit(main())
