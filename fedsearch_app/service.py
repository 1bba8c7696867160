"""
================================================================================
FedSearch v1.0 - Search Service
================================================================================
Process-wide wiring behind the HTTP API.

Each client (session id, logged-in user id or remote address) gets its own
SearchSession + SearchCoordinator pair, so supersession, the response cache
and the enriched local dataset are all per client. Clients are kept in an
LRU table; the module registry and the key-value store are shared.
================================================================================
"""

import asyncio
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from remotes import ModuleRegistry, get_module_registry

from .cache import GlobalCache
from .config import SearchSettings
from .search.coordinator import LocalDataset, SearchCoordinator
from .search.history import SearchHistory
from .search.session import SearchSession

logger = logging.getLogger(__name__)

MAX_CLIENTS = 1000

_loop_local = threading.local()


def run_async(coro):
    """
    Run async coroutine in sync Flask context.

    Flask routes are sync, but the search pipeline is async. Each worker
    thread keeps one event loop so pooled HTTP clients stay usable.
    """
    loop = getattr(_loop_local, 'loop', None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        _loop_local.loop = loop
    return loop.run_until_complete(coro)


@dataclass
class SearchClient:
    session: SearchSession
    coordinator: SearchCoordinator


class SearchService:
    """Owns settings, module registry, history store and per-client state."""

    def __init__(
        self,
        settings: Optional[SearchSettings] = None,
        registry: Optional[ModuleRegistry] = None,
        store: Optional[GlobalCache] = None,
        max_clients: int = MAX_CLIENTS
    ):
        self.settings = settings or SearchSettings.from_env()
        self.registry = registry if registry is not None else get_module_registry(self.settings)
        self.store = store if store is not None else GlobalCache(redis_url=self.settings.redis_url)
        self.max_clients = max_clients
        self._clients: 'OrderedDict[str, SearchClient]' = OrderedDict()
        self._lock = threading.Lock()

    def history_for(self, client_key: str) -> SearchHistory:
        return SearchHistory(
            self.store,
            key=f"{self.settings.history_key}:{client_key}",
            max_items=self.settings.history_size,
        )

    def client(self, client_key: str) -> SearchClient:
        """Get or create the session/coordinator pair for a client."""
        with self._lock:
            client = self._clients.get(client_key)
            if client is not None:
                self._clients.move_to_end(client_key)
                return client

            coordinator = SearchCoordinator.from_settings(
                self.settings,
                self.registry.module_apis(),
                dataset=LocalDataset(),
            )
            client = SearchClient(
                session=SearchSession(history=self.history_for(client_key)),
                coordinator=coordinator,
            )
            self._clients[client_key] = client
            while len(self._clients) > self.max_clients:
                evicted, _ = self._clients.popitem(last=False)
                logger.debug(f"Evicted search client {evicted}")
            return client

    def existing_client(self, client_key: str) -> Optional[SearchClient]:
        with self._lock:
            return self._clients.get(client_key)

    def clear_caches(self, client_key: Optional[str] = None) -> int:
        """Clear response caches (one client or all). Returns caches cleared."""
        with self._lock:
            if client_key is not None:
                clients = [self._clients[client_key]] if client_key in self._clients else []
            else:
                clients = list(self._clients.values())
        for client in clients:
            client.coordinator.cache.clear()
        return len(clients)

    def cache_stats(self) -> dict:
        """Response cache statistics summed over all clients."""
        with self._lock:
            stats = [client.coordinator.cache.stats() for client in self._clients.values()]
        hits = sum(s['hits'] for s in stats)
        misses = sum(s['misses'] for s in stats)
        total = hits + misses
        return {
            'clients': len(stats),
            'size': sum(s['size'] for s in stats),
            'hits': hits,
            'misses': misses,
            'hit_rate': round(hits / total * 100, 2) if total else 0.0,
            'ttl': self.settings.cache_ttl,
            'max_entries': self.settings.cache_max_entries,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)
