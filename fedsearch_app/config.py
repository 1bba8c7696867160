"""
Search configuration.

All values come from SEARCH_* environment variables (a .env file is loaded
by the package on import). Invalid values fall back to the defaults with a
warning.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .search.orchestrator import MODULE_ORDER

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"⚠️ {name}={raw!r} is not a number, using {default}")
        return default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"⚠️ {name}={raw!r} is not an integer, using {default}")
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in ('1', 'true', 'yes', 'on')


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.environ.get(name)
    if not raw:
        return list(default)
    return [part.strip() for part in raw.split(',') if part.strip()]


def _env_json_map(name: str) -> Dict[str, float]:
    raw = os.environ.get(name)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning(f"⚠️ {name} is not valid JSON, ignoring")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"⚠️ {name} must be a JSON object, ignoring")
        return {}
    result = {}
    for key, value in data.items():
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            result[str(key)] = float(value)
        else:
            logger.warning(f"⚠️ {name}: ignoring {key}={value!r}")
    return result


@dataclass
class SearchSettings:
    # Response cache
    cache_ttl: float = 600.0
    cache_max_entries: Optional[int] = 500
    cache_sweep_interval: float = 300.0

    # Pipeline
    sparse_threshold: int = 15
    max_local_chats: int = 500
    max_local_users: int = 100
    min_server_length: int = 3
    max_results: Optional[int] = None
    enabled_modules: List[str] = field(default_factory=lambda: list(MODULE_ORDER))
    module_weights: Dict[str, float] = field(default_factory=dict)
    match_scores: Dict[str, float] = field(default_factory=dict)

    # Remote modules
    api_base_url: Optional[str] = None
    api_timeout: float = 5.0
    mock_data_path: Optional[str] = None
    mock_latency: float = 0.3

    # History
    history_size: int = 20
    history_key: str = '_adv_search_history'
    redis_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'SearchSettings':
        """Read settings from the environment."""
        max_results = _env_int('SEARCH_MAX_RESULTS', None)
        cache_max_entries = _env_int('SEARCH_CACHE_MAX_ENTRIES', 500)
        return cls(
            cache_ttl=_env_float('SEARCH_CACHE_TTL', 600.0),
            cache_max_entries=cache_max_entries if cache_max_entries else None,
            cache_sweep_interval=_env_float('SEARCH_CACHE_SWEEP_INTERVAL', 300.0),
            sparse_threshold=_env_int('SEARCH_SPARSE_THRESHOLD', 15),
            max_local_chats=_env_int('SEARCH_MAX_LOCAL_CHATS', 500),
            max_local_users=_env_int('SEARCH_MAX_LOCAL_USERS', 100),
            min_server_length=_env_int('SEARCH_MIN_SERVER_LENGTH', 3),
            max_results=max_results if max_results else None,
            enabled_modules=_env_list('SEARCH_ENABLED_MODULES', list(MODULE_ORDER)),
            module_weights=_env_json_map('SEARCH_MODULE_WEIGHTS'),
            match_scores=_env_json_map('SEARCH_MATCH_SCORES'),
            api_base_url=os.environ.get('SEARCH_API_BASE_URL') or None,
            api_timeout=_env_float('SEARCH_API_TIMEOUT', 5.0),
            mock_data_path=os.environ.get('SEARCH_MOCK_DATA') or None,
            mock_latency=_env_float('SEARCH_MOCK_LATENCY', 0.3),
            history_size=_env_int('SEARCH_HISTORY_SIZE', 20),
            history_key=os.environ.get('SEARCH_HISTORY_KEY') or '_adv_search_history',
            redis_url=os.environ.get('REDIS_URL') or None,
        )


def flask_settings() -> Dict[str, object]:
    """Flask server settings from FLASK_* variables."""
    return {
        'HOST': os.environ.get('FLASK_HOST', '127.0.0.1'),
        'PORT': _env_int('FLASK_PORT', 5000),
        'DEBUG': _env_bool('FLASK_DEBUG'),
        'DISABLE_RATE_LIMITING': _env_bool('DISABLE_RATE_LIMITING'),
    }
