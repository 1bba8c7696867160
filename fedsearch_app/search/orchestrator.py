"""
================================================================================
FedSearch v1.0 - Remote Fetch Orchestrator
================================================================================
Fans one parsed query out to the remote search modules.

Flow:
  1. Skip entirely when the local stage already found plenty (sparse check)
  2. Call "globalsearch" + every enabled module allowed by the category,
     all in parallel, all sharing one CancellationToken
  3. Tag each record with module / origin / canonical id
  4. Drop records the local dataset already holds (exclusion sets)
  5. Report global-search chats and new people as an EnrichmentDiff

Isolation:
  - One module failing never aborts the others (logged, empty result)
  - Cancellation is not a failure and is only logged at debug level
================================================================================
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set

from .errors import SearchCancelled
from .items import (
    ORIGIN_REMOTE, ResultItem, chat_type_to_module, get_module_kind, id_string
)
from .local_search import LocalSearchResult
from .participants import ExclusionSet, conversation_id
from .query_parser import ParsedQuery

logger = logging.getLogger(__name__)

GLOBAL_MODULE = 'globalsearch'
SPARSE_THRESHOLD = 15

# Call order for module fetches (results are ranked afterwards, so this only
# decides task creation order)
MODULE_ORDER = (
    'users', 'chats', 'channels', 'bots', 'threads', 'messages', 'files',
    'department', 'widgets', 'apps', 'connections', 'settings',
)

ModuleFetch = Callable[[ParsedQuery, 'CancellationToken'], Awaitable[List[Dict[str, Any]]]]


class CancellationToken:
    """
    Cancellation handle for one search invocation.

    Created by the coordinator and passed to every module call. Cancelling
    it cancels every tracked task; module code can also poll `cancelled` or
    call `raise_if_cancelled()`.
    """

    def __init__(self, invocation_id: Optional[str] = None):
        self.invocation_id = invocation_id
        self._cancelled = False
        self._tasks: Set[asyncio.Future] = set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel every tracked task. Safe to call from another thread's loop."""
        if self._cancelled:
            return
        self._cancelled = True
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        for task in list(self._tasks):
            loop = task.get_loop()
            if loop is running:
                task.cancel()
            elif not loop.is_closed():
                loop.call_soon_threadsafe(task.cancel)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SearchCancelled(self.invocation_id)

    def track(self, task: asyncio.Future) -> asyncio.Future:
        """Register a task so cancel() reaches it."""
        if self._cancelled:
            task.cancel()
            return task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def __repr__(self) -> str:
        state = 'cancelled' if self._cancelled else 'active'
        return f"<CancellationToken {self.invocation_id} {state}>"


@dataclass
class ModuleReport:
    """What one module call produced."""
    module: str
    items: List[ResultItem] = field(default_factory=list)
    error: Optional[str] = None
    cancelled: bool = False
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled


@dataclass
class EnrichmentDiff:
    """Records to fold into the working local dataset after a fetch."""
    chats: List[Dict[str, Any]] = field(default_factory=list)
    users: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.chats and not self.users


@dataclass
class FetchOutcome:
    items: List[ResultItem] = field(default_factory=list)
    reports: List[ModuleReport] = field(default_factory=list)
    enrichment: EnrichmentDiff = field(default_factory=EnrichmentDiff)

    @property
    def failed_modules(self) -> List[str]:
        return [r.module for r in self.reports if r.error]


class RemoteFetchOrchestrator:
    """
    Concurrent fan-out over the remote module APIs.

    Args:
        module_apis: module tag -> async fetch(parsed_query, token); the
            "globalsearch" entry is the cross-module call
        sparse_threshold: local match count below which remote fetch runs
    """

    def __init__(self, module_apis: Dict[str, ModuleFetch], sparse_threshold: int = SPARSE_THRESHOLD):
        self.module_apis = dict(module_apis)
        self.sparse_threshold = sparse_threshold

    def should_fetch(self, local: LocalSearchResult) -> bool:
        """Sparse-result heuristic: only go remote when local matches are few."""
        return len(local.chats) < self.sparse_threshold or len(local.users) < self.sparse_threshold

    def plan(self, enabled_modules: Iterable[str], active_category: str = 'all') -> List[str]:
        """
        Module calls for one invocation, global search first.

        Modules cooling down (rate limited or offline connectors report
        is_available False) are left out until their cooldown expires.
        """
        enabled = set(enabled_modules or ())
        candidates = []
        if GLOBAL_MODULE in self.module_apis:
            candidates.append(GLOBAL_MODULE)
        extra = [m for m in self.module_apis if m not in MODULE_ORDER and m != GLOBAL_MODULE]
        for module in list(MODULE_ORDER) + extra:
            if module not in self.module_apis or module not in enabled:
                continue
            if active_category != 'all' and active_category != module:
                continue
            candidates.append(module)

        calls = []
        for module in candidates:
            if not getattr(self.module_apis[module], 'is_available', True):
                logger.debug(f"⏳ Skipping {module}: cooling down")
                continue
            calls.append(module)
        return calls

    async def fetch(
        self,
        parsed_query: ParsedQuery,
        token: CancellationToken,
        exclusions: ExclusionSet,
        enabled_modules: Sequence[str] = (),
        active_category: str = 'all',
        logged_user_id: Optional[str] = None
    ) -> FetchOutcome:
        """
        Query every planned module in parallel and wait for all of them.

        Returns:
            FetchOutcome with flattened remote items, one report per call
            and the enrichment diff for the working dataset
        """
        calls = self.plan(enabled_modules, active_category)
        if not calls:
            return FetchOutcome()

        logger.debug(f"Fetching {len(calls)} modules for '{parsed_query.trimmed}': {', '.join(calls)}")

        tasks = [
            token.track(asyncio.ensure_future(
                self._call_module(module, parsed_query, token, exclusions, logged_user_id)
            ))
            for module in calls
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        reports: List[ModuleReport] = []
        for module, result in zip(calls, results):
            if isinstance(result, (asyncio.CancelledError, SearchCancelled)):
                logger.debug(f"Module '{module}' cancelled")
                reports.append(ModuleReport(module, cancelled=True))
            elif isinstance(result, BaseException):
                logger.warning(f"Module '{module}' failed: {result}")
                reports.append(ModuleReport(module, error=str(result)))
            else:
                reports.append(result)

        outcome = FetchOutcome(reports=reports)
        for report in reports:
            outcome.items.extend(report.items)
        outcome.enrichment = self._build_enrichment(reports, exclusions)
        return outcome

    async def _call_module(
        self,
        module: str,
        parsed_query: ParsedQuery,
        token: CancellationToken,
        exclusions: ExclusionSet,
        logged_user_id: Optional[str]
    ) -> ModuleReport:
        api = self.module_apis[module]
        start = time.time()
        try:
            token.raise_if_cancelled()
            raw = await api(parsed_query, token)
        except SearchCancelled:
            logger.debug(f"Module '{module}' cancelled")
            return ModuleReport(module, cancelled=True, elapsed=time.time() - start)
        except Exception as e:
            logger.warning(f"Module '{module}' failed: {e}")
            return ModuleReport(module, error=str(e), elapsed=time.time() - start)

        records = [r for r in raw if isinstance(r, dict)] if isinstance(raw, list) else []
        if module == GLOBAL_MODULE:
            items = [self._tag_global(record, logged_user_id) for record in records]
        else:
            items = self._tag_module(module, records, exclusions)

        elapsed = time.time() - start
        logger.debug(f"Module '{module}' returned {len(items)}/{len(records)} records in {elapsed:.3f}s")
        return ModuleReport(module, items=items, elapsed=elapsed)

    def _tag_module(self, module: str, records: List[Dict[str, Any]], exclusions: ExclusionSet) -> List[ResultItem]:
        kind = get_module_kind(module)
        excluded = exclusions.for_kind(kind.exclusion)
        items = []
        for record in records:
            canonical_id = kind.canonical_id(record)
            if excluded is not None and canonical_id is not None and canonical_id in excluded:
                continue
            items.append(ResultItem(
                module=record.get('_module') or module,
                origin=ORIGIN_REMOTE,
                canonical_id=canonical_id,
                record=record,
            ))
        return items

    def _tag_global(self, record: Dict[str, Any], logged_user_id: Optional[str]) -> ResultItem:
        return ResultItem(
            module=record.get('_module') or chat_type_to_module(record.get('chat_type')),
            origin=ORIGIN_REMOTE,
            canonical_id=conversation_id(record, logged_user_id),
            record=record,
        )

    def _build_enrichment(self, reports: List[ModuleReport], exclusions: ExclusionSet) -> EnrichmentDiff:
        diff = EnrichmentDiff()
        seen_chats = set(exclusions.chat_ids)
        seen_users = set(exclusions.user_ids)
        for report in reports:
            if report.module == GLOBAL_MODULE:
                for item in report.items:
                    chat_id = id_string(item.record.get('chatid'))
                    if chat_id and chat_id not in seen_chats:
                        seen_chats.add(chat_id)
                        diff.chats.append(item.record)
            elif report.module == 'users':
                for item in report.items:
                    uid = id_string(item.record.get('zuid'))
                    if uid and uid not in seen_users:
                        seen_users.add(uid)
                        diff.users.append(item.record)
        return diff
