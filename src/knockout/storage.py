"""
YAML file persistence.

Layout under data_dir:

    tournaments.yaml            registry: id counters and tournament records
    .lock                       guards the registry
    tournaments/<id>/matches.yaml
    tournaments/<id>/.lock      guards one tournament's matches

Callers that read, modify and write back must hold the matching lock;
the store itself does not lock on plain reads and writes. Files are
replaced whole, so an unlocked reader sees either the old or the new
document, never a partial one.
"""
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

import yaml
from filelock import FileLock, Timeout

from .errors import NotFoundError, StorageError
from .models import Match, Tournament, bracket_sort_key

logger = logging.getLogger(__name__)

REGISTRY_FILE = 'tournaments.yaml'
MATCHES_FILE = 'matches.yaml'
TOURNAMENTS_DIR = 'tournaments'


class YamlStore:
    def __init__(self, data_dir: str, lock_timeout: float = 10):
        self.data_dir = data_dir
        self.lock_timeout = lock_timeout
        self._locks: Dict[str, FileLock] = {}
        os.makedirs(os.path.join(data_dir, TOURNAMENTS_DIR), exist_ok=True)

    # -- paths and locks --------------------------------------------------

    def _registry_path(self) -> str:
        return os.path.join(self.data_dir, REGISTRY_FILE)

    def _tournament_dir(self, tournament_id: int) -> str:
        return os.path.join(self.data_dir, TOURNAMENTS_DIR, str(tournament_id))

    def _matches_path(self, tournament_id: int) -> str:
        return os.path.join(self._tournament_dir(tournament_id), MATCHES_FILE)

    def _lock(self, path: str) -> FileLock:
        # one FileLock per path so nested acquisition in this process is re-entrant
        if path not in self._locks:
            self._locks[path] = FileLock(path, timeout=self.lock_timeout)
        return self._locks[path]

    @contextmanager
    def _acquire(self, path: str):
        lock = self._lock(path)
        try:
            lock.acquire()
        except Timeout:
            raise StorageError(f'Timed out after {self.lock_timeout}s waiting for {path}')
        try:
            yield
        finally:
            lock.release()

    def registry_lock(self):
        return self._acquire(os.path.join(self.data_dir, '.lock'))

    def tournament_lock(self, tournament_id: int):
        """Mutual exclusion for read-modify-write on one tournament's matches."""
        os.makedirs(self._tournament_dir(tournament_id), exist_ok=True)
        return self._acquire(os.path.join(self._tournament_dir(tournament_id), '.lock'))

    # -- raw YAML ---------------------------------------------------------

    def _read(self, path: str, default):
        if not os.path.exists(path):
            return default
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f'Failed to read {path}: {e}')
            raise StorageError(f'Failed to read {path}: {e}')
        return data if data else default

    def _write(self, path: str, data):
        directory = os.path.dirname(path)
        os.makedirs(directory, exist_ok=True)
        tmp_path = None
        try:
            # same directory so os.replace never crosses filesystems
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=directory,
                                             prefix='.', suffix='.tmp', delete=False) as tmp:
                tmp_path = tmp.name
                yaml.dump(data, tmp, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(f'Failed to write {path}: {e}')

    def _load_registry(self) -> Dict:
        registry = self._read(self._registry_path(), {})
        registry.setdefault('next_tournament_id', 1)
        registry.setdefault('next_match_id', 1)
        registry.setdefault('tournaments', [])
        return registry

    def _save_registry(self, registry: Dict):
        self._write(self._registry_path(), registry)

    # -- tournaments ------------------------------------------------------

    def create_tournament(self, sport: str, tournament_format: str, status: str = 'active') -> Tournament:
        with self.registry_lock():
            registry = self._load_registry()
            tournament = Tournament(
                id=registry['next_tournament_id'],
                sport=sport,
                format=tournament_format,
                status=status,
                created_at=datetime.now(),
            )
            registry['next_tournament_id'] += 1
            registry['tournaments'].append(tournament.to_dict())
            self._save_registry(registry)
        os.makedirs(self._tournament_dir(tournament.id), exist_ok=True)
        return tournament

    def get_tournament(self, tournament_id: int) -> Optional[Tournament]:
        for data in self._load_registry()['tournaments']:
            if data['id'] == tournament_id:
                return Tournament.from_dict(data)
        return None

    def list_tournaments(self, sport: str = None, status: str = None) -> List[Tournament]:
        tournaments = [Tournament.from_dict(d) for d in self._load_registry()['tournaments']]
        if sport:
            tournaments = [t for t in tournaments if t.sport == sport]
        if status:
            tournaments = [t for t in tournaments if t.status == status]
        return tournaments

    def update_tournament(self, tournament: Tournament):
        with self.registry_lock():
            registry = self._load_registry()
            for i, data in enumerate(registry['tournaments']):
                if data['id'] == tournament.id:
                    # keep the match id range recorded by create_matches
                    updated = tournament.to_dict()
                    if 'match_ids' in data:
                        updated['match_ids'] = data['match_ids']
                    registry['tournaments'][i] = updated
                    self._save_registry(registry)
                    return
        raise NotFoundError(f'Tournament {tournament.id} not found')

    def delete_tournament(self, tournament_id: int):
        """
        Remove the registry entry.

        The tournament directory is left in place so a caller holding its
        lock can finish; call remove_tournament_files once the lock is released.
        """
        with self.registry_lock():
            registry = self._load_registry()
            remaining = [d for d in registry['tournaments'] if d['id'] != tournament_id]
            if len(remaining) == len(registry['tournaments']):
                raise NotFoundError(f'Tournament {tournament_id} not found')
            registry['tournaments'] = remaining
            self._save_registry(registry)

    def remove_tournament_files(self, tournament_id: int):
        self._locks.pop(os.path.join(self._tournament_dir(tournament_id), '.lock'), None)
        shutil.rmtree(self._tournament_dir(tournament_id), ignore_errors=True)

    # -- matches ----------------------------------------------------------

    def allocate_match_ids(self, tournament_id: int, count: int) -> int:
        """Reserve count consecutive match ids for a tournament; returns the first."""
        with self.registry_lock():
            registry = self._load_registry()
            first_id = registry['next_match_id']
            registry['next_match_id'] += count
            for data in registry['tournaments']:
                if data['id'] == tournament_id:
                    data['match_ids'] = [first_id, first_id + count - 1]
                    break
            else:
                raise NotFoundError(f'Tournament {tournament_id} not found')
            self._save_registry(registry)
        return first_id

    def create_matches(self, tournament_id: int, matches: List[Match]):
        for match in matches:
            match.tournament_id = tournament_id
        self.save_matches(tournament_id, matches)

    def list_matches(self, tournament_id: int, round_name: str = None) -> List[Match]:
        data = self._read(self._matches_path(tournament_id), {})
        matches = [Match.from_dict(d) for d in data.get('matches', [])]
        if round_name:
            matches = [m for m in matches if m.round == round_name]
        return sorted(matches, key=bracket_sort_key)

    def save_matches(self, tournament_id: int, matches: List[Match]):
        ordered = sorted(matches, key=bracket_sort_key)
        self._write(self._matches_path(tournament_id), {'matches': [m.to_dict() for m in ordered]})

    def update_matches(self, tournament_id: int, updated: List[Match]):
        """Replace the stored copies of the given matches."""
        by_id = {m.id: m for m in updated}
        matches = self.list_matches(tournament_id)
        missing = set(by_id) - {m.id for m in matches}
        if missing:
            raise NotFoundError(f"Matches {sorted(missing)} not found in tournament {tournament_id}")
        self.save_matches(tournament_id, [by_id.get(m.id, m) for m in matches])

    def update_match(self, match: Match):
        self.update_matches(match.tournament_id, [match])

    def count_matches(self, tournament_id: int) -> int:
        return len(self.list_matches(tournament_id))

    def find_tournament_id_for_match(self, match_id: int) -> Optional[int]:
        for data in self._load_registry()['tournaments']:
            ids = data.get('match_ids')
            if ids and ids[0] <= match_id <= ids[1]:
                return data['id']
        return None

    def get_match(self, match_id: int) -> Optional[Match]:
        tournament_id = self.find_tournament_id_for_match(match_id)
        if tournament_id is None:
            return None
        for match in self.list_matches(tournament_id):
            if match.id == match_id:
                return match
        return None
