"""
Settings: defaults, overridden by an optional YAML file, overridden by
environment variables.
"""
import logging
import os

import yaml

from .elimination import parse_day_start
from .errors import ValidationError

CONFIG_ENV = 'TOURNAMENT_CONFIG'
DATA_DIR_ENV = 'TOURNAMENT_DATA_DIR'
LOG_LEVEL_ENV = 'TOURNAMENT_LOG_LEVEL'


def get_default_config() -> dict:
    return {
        # relative to where the command runs, not where the package is installed
        'data_dir': os.path.join(os.getcwd(), 'data'),
        'lock_timeout_seconds': 10,
        'day_start_time': '09:30',
        'log_level': 'INFO',
    }


def load_config(path: str = None) -> dict:
    """
    Build the effective settings.

    path defaults to $TOURNAMENT_CONFIG. A missing file is ignored; a file
    that is not a YAML mapping is a ValidationError.
    """
    config = get_default_config()

    path = path or os.environ.get(CONFIG_ENV)
    if path and os.path.exists(path):
        with open(path, 'r', encoding='utf-8') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValidationError(f'Failed to parse {path}: {e}')
        if data:
            if not isinstance(data, dict):
                raise ValidationError(f'{path} must contain a mapping of settings')
            unknown = set(data) - set(config)
            if unknown:
                raise ValidationError(f"Unknown settings in {path}: {', '.join(sorted(unknown))}")
            config.update(data)

    if os.environ.get(DATA_DIR_ENV):
        config['data_dir'] = os.environ[DATA_DIR_ENV]
    if os.environ.get(LOG_LEVEL_ENV):
        config['log_level'] = os.environ[LOG_LEVEL_ENV]

    return validate_config(config)


def validate_config(config: dict) -> dict:
    timeout = config['lock_timeout_seconds']
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValidationError(f'lock_timeout_seconds must be a positive number, got {timeout!r}')

    level = str(config['log_level']).upper()
    if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        raise ValidationError(f"Invalid log_level '{config['log_level']}'")
    config['log_level'] = level

    start = config['day_start_time']
    if isinstance(start, int) and not isinstance(start, bool):
        # unquoted 09:30 in YAML 1.1 loads as sexagesimal minutes
        start = f'{start // 60:02d}:{start % 60:02d}'
    parse_day_start(start)
    config['day_start_time'] = start
    return config


def configure_logging(config: dict):
    logging.basicConfig(
        level=getattr(logging, config['log_level']),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
