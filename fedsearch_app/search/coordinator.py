"""
================================================================================
FedSearch v1.0 - Search Coordinator
================================================================================
Composes the whole pipeline into one operation per query.

Flow:
  1. Cancel the previous invocation if it is still fetching (supersession)
  2. Check the response cache (hit -> done)
  3. Build exclusion sets and run the local stage on a dataset snapshot
  4. Publish the local results as the partial outcome
  5. Fan out to the remote modules when local results are sparse
  6. Apply the enrichment diff, merge, cache, return the final outcome

States:
  idle -> checking_cache -> done (cache hit)
                         -> local_searching -> remote_fetching -> merging
                            -> caching -> done
  remote_fetching -> aborted (superseded)
  any stage       -> failed  (raises SearchPipelineError)
================================================================================
"""

import asyncio
import inspect
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..log import debug_log_event
from .cache import ResponseCache
from .errors import SearchPipelineError
from .items import (
    ResultItem, default_get_dedup_key, default_get_fields, id_string, make_weight_getter
)
from .local_search import MAX_LOCAL_CHATS, MAX_LOCAL_USERS, LocalSearchResult, run_local_search
from .merger import merge_results
from .orchestrator import (
    MODULE_ORDER, SPARSE_THRESHOLD, CancellationToken, EnrichmentDiff,
    ModuleFetch, RemoteFetchOrchestrator
)
from .participants import build_exclusion_sets, person_id
from .query_parser import ParsedQuery, parse_query
from .scorer import DEFAULT_SCORER_CONFIG, ScorerConfig

logger = logging.getLogger(__name__)


class SearchState(str, Enum):
    IDLE = 'idle'
    CHECKING_CACHE = 'checking_cache'
    LOCAL_SEARCHING = 'local_searching'
    REMOTE_FETCHING = 'remote_fetching'
    MERGING = 'merging'
    CACHING = 'caching'
    DONE = 'done'
    ABORTED = 'aborted'
    FAILED = 'failed'


TERMINAL_STATES = (SearchState.DONE, SearchState.ABORTED, SearchState.FAILED)


@dataclass
class SearchOutcome:
    """One observation of an invocation: partial, final or aborted."""
    results: List[ResultItem] = field(default_factory=list)
    is_partial: bool = False
    aborted: bool = False
    from_cache: bool = False
    invocation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'results': [item.to_dict() for item in self.results],
            'count': len(self.results),
            'is_partial': self.is_partial,
            'aborted': self.aborted,
            'from_cache': self.from_cache,
        }


@dataclass
class SearchInvocation:
    query: ParsedQuery
    category: str
    token: CancellationToken
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: SearchState = SearchState.IDLE
    states: List[SearchState] = field(default_factory=lambda: [SearchState.IDLE])
    started_at: float = field(default_factory=time.time)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, state: SearchState) -> None:
        logger.debug(f"[{self.id}] {self.state.value} -> {state.value}")
        self.state = state
        self.states.append(state)


class LocalDataset:
    """
    Working copy of the locally held chats and people.

    Invocations read snapshots; the coordinator folds enrichment diffs back
    in once a fetch completes.
    """

    def __init__(self, chats: Optional[Sequence[Dict[str, Any]]] = None,
                 users: Optional[Sequence[Dict[str, Any]]] = None):
        self.chats: List[Dict[str, Any]] = list(chats or [])
        self.users: List[Dict[str, Any]] = list(users or [])
        self._lock = threading.Lock()

    def snapshot(self) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        with self._lock:
            return list(self.chats), list(self.users)

    def replace(self, chats: Sequence[Dict[str, Any]], users: Sequence[Dict[str, Any]]) -> None:
        with self._lock:
            self.chats = list(chats)
            self.users = list(users)

    def apply(self, diff: EnrichmentDiff) -> int:
        """Append records from the diff that are not held yet. Returns count added."""
        if diff.is_empty:
            return 0
        added = 0
        with self._lock:
            chat_ids = {id_string(c.get('chatid')) for c in self.chats}
            user_ids = {person_id(u) for u in self.users}
            for chat in diff.chats:
                chat_id = id_string(chat.get('chatid'))
                if chat_id and chat_id not in chat_ids:
                    chat_ids.add(chat_id)
                    self.chats.append(chat)
                    added += 1
            for user in diff.users:
                uid = person_id(user)
                if uid and uid not in user_ids:
                    user_ids.add(uid)
                    self.users.append(user)
                    added += 1
        return added


PartialCallback = Callable[[SearchOutcome], Any]


class SearchCoordinator:
    """
    Runs search invocations end to end.

    Only the newest invocation is current; starting one cancels the token
    of any earlier invocation that has not finished.
    """

    def __init__(
        self,
        module_apis: Dict[str, ModuleFetch],
        dataset: Optional[LocalDataset] = None,
        cache: Optional[ResponseCache] = None,
        weights: Optional[Dict[str, float]] = None,
        enabled_modules: Optional[Sequence[str]] = None,
        scorer_config: ScorerConfig = DEFAULT_SCORER_CONFIG,
        get_fields: Callable[[ResultItem], Sequence[str]] = default_get_fields,
        get_dedup_key: Callable[[ResultItem], str] = default_get_dedup_key,
        sparse_threshold: int = SPARSE_THRESHOLD,
        max_local_chats: int = MAX_LOCAL_CHATS,
        max_local_users: int = MAX_LOCAL_USERS,
        max_results: Optional[int] = None
    ):
        self.orchestrator = RemoteFetchOrchestrator(module_apis, sparse_threshold)
        self.dataset = dataset if dataset is not None else LocalDataset()
        self.cache = cache if cache is not None else ResponseCache()
        self.get_weight = make_weight_getter(weights)
        self.enabled_modules = list(enabled_modules) if enabled_modules is not None else list(MODULE_ORDER)
        self.scorer_config = scorer_config
        self.get_fields = get_fields
        self.get_dedup_key = get_dedup_key
        self.max_local_chats = max_local_chats
        self.max_local_users = max_local_users
        self.max_results = max_results
        self._current: Optional[SearchInvocation] = None

    @classmethod
    def from_settings(cls, settings, module_apis: Dict[str, ModuleFetch],
                      dataset: Optional[LocalDataset] = None,
                      cache: Optional[ResponseCache] = None) -> 'SearchCoordinator':
        """Build a coordinator from SearchSettings."""
        if cache is None:
            cache = ResponseCache(
                ttl=settings.cache_ttl,
                max_entries=settings.cache_max_entries,
                sweep_interval=settings.cache_sweep_interval,
            )
        return cls(
            module_apis,
            dataset=dataset,
            cache=cache,
            weights=settings.module_weights,
            enabled_modules=settings.enabled_modules,
            scorer_config=ScorerConfig.from_overrides(settings.match_scores),
            sparse_threshold=settings.sparse_threshold,
            max_local_chats=settings.max_local_chats,
            max_local_users=settings.max_local_users,
            max_results=settings.max_results,
        )

    @property
    def current(self) -> Optional[SearchInvocation]:
        return self._current

    def cancel_current(self) -> bool:
        """Cancel the running invocation, if any. Returns True if one was cancelled."""
        invocation = self._current
        if invocation is None or invocation.finished or invocation.token.cancelled:
            return False
        logger.debug(f"[{invocation.id}] Superseded '{invocation.query.trimmed}'")
        invocation.token.cancel()
        return True

    async def search(
        self,
        query: str,
        category: str = 'all',
        logged_user_id: Optional[str] = None,
        on_partial: Optional[PartialCallback] = None,
        remote: bool = True
    ) -> SearchOutcome:
        """
        Run one search invocation.

        Args:
            query: Raw query text (filter tokens allowed)
            category: Active category tab ('all' or a module tag)
            logged_user_id: Id of the logged-in user (other-party resolution)
            on_partial: Called once with the local-stage outcome
            remote: False skips the remote fetch stage entirely

        Returns:
            Final or aborted SearchOutcome

        Raises:
            SearchPipelineError: on any unrecoverable failure
        """
        parsed = parse_query(query)
        self.cancel_current()

        invocation = SearchInvocation(
            query=parsed,
            category=category or 'all',
            token=CancellationToken(),
        )
        invocation.token.invocation_id = invocation.id
        self._current = invocation

        if parsed.is_empty:
            invocation.transition(SearchState.DONE)
            return SearchOutcome(invocation_id=invocation.id)

        try:
            outcome = await self._run(invocation, logged_user_id, on_partial, remote)
        except asyncio.CancelledError:
            invocation.token.cancel()
            invocation.transition(SearchState.ABORTED)
            raise
        except Exception as e:
            stage = invocation.state.value
            invocation.transition(SearchState.FAILED)
            logger.error(f"❌ [{invocation.id}] Search '{parsed.trimmed}' failed during {stage}: {e}")
            debug_log_event({
                'event': 'search_failed',
                'invocation': invocation.id,
                'stage': stage,
                'error': str(e),
            })
            raise SearchPipelineError(f"Search for '{parsed.trimmed}' failed: {e}", stage=stage) from e

        debug_log_event({
            'event': 'search_done',
            'invocation': invocation.id,
            'query': parsed.trimmed,
            'filters': parsed.filters,
            'category': invocation.category,
            'state': invocation.state.value,
            'results': len(outcome.results),
            'from_cache': outcome.from_cache,
            'elapsed_ms': int((time.time() - invocation.started_at) * 1000),
        })
        return outcome

    async def _run(
        self,
        invocation: SearchInvocation,
        logged_user_id: Optional[str],
        on_partial: Optional[PartialCallback],
        remote: bool
    ) -> SearchOutcome:
        parsed = invocation.query
        start_time = time.time()

        # CHECK CACHE FIRST
        invocation.transition(SearchState.CHECKING_CACHE)
        cached = self.cache.get(parsed, invocation.category)
        if cached is not None:
            logger.info(f"⚡ Cache HIT for '{parsed.trimmed}' ({len(cached)} results, took {time.time() - start_time:.3f}s)")
            invocation.transition(SearchState.DONE)
            return SearchOutcome(cached, from_cache=True, invocation_id=invocation.id)

        # Local stage on a snapshot
        invocation.transition(SearchState.LOCAL_SEARCHING)
        chats, users = self.dataset.snapshot()
        exclusions = build_exclusion_sets(chats, users, logged_user_id)
        if parsed.phrase:
            local = run_local_search(
                chats, users, parsed.phrase.lower(), logged_user_id,
                self.max_local_chats, self.max_local_users,
            )
        else:
            local = LocalSearchResult()
        local_items = local.results

        if on_partial is not None and self._current is invocation:
            result = on_partial(SearchOutcome(list(local_items), is_partial=True, invocation_id=invocation.id))
            if inspect.isawaitable(result):
                await result

        # Remote stage
        remote_items: List[ResultItem] = []
        if remote and self.orchestrator.should_fetch(local):
            invocation.transition(SearchState.REMOTE_FETCHING)
            fetched = await self.orchestrator.fetch(
                parsed, invocation.token, exclusions,
                enabled_modules=self.enabled_modules,
                active_category=invocation.category,
                logged_user_id=logged_user_id,
            )
            if invocation.token.cancelled or self._current is not invocation:
                logger.debug(f"[{invocation.id}] Discarding superseded results for '{parsed.trimmed}'")
                invocation.transition(SearchState.ABORTED)
                return SearchOutcome(aborted=True, invocation_id=invocation.id)

            if fetched.failed_modules:
                logger.info(f"⚠️ Modules failed for '{parsed.trimmed}': {', '.join(fetched.failed_modules)}")
            added = self.dataset.apply(fetched.enrichment)
            if added:
                logger.debug(f"[{invocation.id}] Enriched local dataset with {added} records")
            remote_items = fetched.items

        invocation.transition(SearchState.MERGING)
        results = merge_results(
            local_items, remote_items, parsed, self.get_weight,
            get_fields=self.get_fields,
            get_dedup_key=self.get_dedup_key,
            scorer_config=self.scorer_config,
            max_results=self.max_results,
        )

        invocation.transition(SearchState.CACHING)
        self.cache.set(parsed, results, invocation.category)

        invocation.transition(SearchState.DONE)
        logger.info(
            f"Search '{parsed.trimmed}' -> {len(results)} results "
            f"({len(local_items)} local) in {time.time() - start_time:.2f}s"
        )
        return SearchOutcome(results, invocation_id=invocation.id)
