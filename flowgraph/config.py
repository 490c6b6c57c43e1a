"""
Configuration management for flowgraph.

Settings come from config.json in the application directory, overridden by
environment variables (a .env file is loaded by the app entry point):

- FLOWGRAPH_BACKEND: 'json' (default) or 'supabase'
- SUPABASE_URL / SUPABASE_KEY: credentials of the Supabase project
- FLOWGRAPH_DATA_DIR: directory of the local JSON repository
- FLOWGRAPH_UNDO_LIMIT: undo stack depth (20)
- FLOWGRAPH_AVAILABILITY_SLOTS: comma list, order availability edges are labelled in
- FLOWGRAPH_TYPING_DELAY_MS: preview typing delay (800)
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from flowgraph.model import AVAILABILITY_VALUES
from flowgraph.paths import get_config_path, get_data_dir
from flowgraph.undo import UNDO_LIMIT

logger = logging.getLogger(__name__)

BACKENDS = ('json', 'supabase')
DEFAULT_BACKEND = 'json'
DEFAULT_TYPING_DELAY_MS = 800

# config.json key -> environment variable
ENV_KEYS = {
    'backend': 'FLOWGRAPH_BACKEND',
    'supabase_url': 'SUPABASE_URL',
    'supabase_key': 'SUPABASE_KEY',
    'data_dir': 'FLOWGRAPH_DATA_DIR',
    'undo_limit': 'FLOWGRAPH_UNDO_LIMIT',
    'availability_slots': 'FLOWGRAPH_AVAILABILITY_SLOTS',
    'typing_delay_ms': 'FLOWGRAPH_TYPING_DELAY_MS',
}


@dataclass(frozen=True)
class Settings:
    backend: str = DEFAULT_BACKEND
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    data_dir: Path = get_data_dir()
    undo_limit: int = UNDO_LIMIT
    availability_slots: Tuple[str, ...] = AVAILABILITY_VALUES
    typing_delay_ms: int = DEFAULT_TYPING_DELAY_MS


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration from config.json."""
    config_path = Path(config_path) if config_path else get_config_path()
    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            return {}
    return {}


def save_config(config: dict, config_path: Optional[Path] = None) -> None:
    config_path = Path(config_path) if config_path else get_config_path()
    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(config, f, indent=2)


def _int_setting(name: str, raw, default: int) -> int:
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


def _slots_setting(raw) -> Tuple[str, ...]:
    if raw is None or raw == '':
        return AVAILABILITY_VALUES
    parts = raw.split(',') if isinstance(raw, str) else list(raw)
    return tuple(p.strip() for p in parts if p.strip())


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """
    Resolve settings.

    Priority:
    1. Environment variables
    2. config.json
    3. Defaults
    """
    config = load_config(config_path)
    raw = {key: os.environ.get(env) or config.get(key) for key, env in ENV_KEYS.items()}

    backend = (raw['backend'] or DEFAULT_BACKEND).strip().lower()
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend '{backend}'. Valid: {BACKENDS}")

    return Settings(
        backend=backend,
        supabase_url=raw['supabase_url'],
        supabase_key=raw['supabase_key'],
        data_dir=Path(raw['data_dir']) if raw['data_dir'] else get_data_dir(),
        undo_limit=_int_setting('undo_limit', raw['undo_limit'], UNDO_LIMIT),
        availability_slots=_slots_setting(raw['availability_slots']),
        typing_delay_ms=_int_setting('typing_delay_ms', raw['typing_delay_ms'], DEFAULT_TYPING_DELAY_MS),
    )
