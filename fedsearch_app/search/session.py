"""
================================================================================
FedSearch v1.0 - Search Session
================================================================================
Per-user search state: typed text, active filters, category tab, context
and the latest results.

The ParsedQuery is re-derived on every text or filter change. Searches go
through a SearchCoordinator; only outcomes of the session's most recent
run are applied (partial first, then final).
================================================================================
"""

import logging
from typing import Any, Dict, List, Optional

from .coordinator import SearchCoordinator, SearchOutcome
from .errors import SearchPipelineError
from .history import SearchHistory
from .items import ResultItem
from .query_parser import FILTER_TOKENS, ParsedQuery, parse_query, serialize_query, with_filters

logger = logging.getLogger(__name__)

# Category tabs offered in each UI context
CONTEXT_CATEGORIES: Dict[str, List[str]] = {
    'home': ['all', 'users', 'channels', 'chats', 'bots', 'messages', 'department', 'threads', 'widgets'],
    'department': ['users'],
    'channels': ['channels'],
    'history': ['all', 'channels', 'direct_messages', 'group_chats', 'threads', 'bots', 'muted'],
    'sent_messages': ['all', 'conversations_with', 'conversation_in'],
    'files': ['all', 'you', 'specific_sender', 'taz'],
    'org': ['users', 'teams'],
    'profile_settings': ['settings'],
    'connections': ['connections'],
    'apps': ['apps'],
    'create_channel': ['users'],
    'direct_message': ['users'],
    'group_chat': ['users'],
    'make_call': ['users'],
    'create_event': ['users', 'conversations', 'rooms'],
}

DEFAULT_CONTEXT = 'home'


def categories_for_context(context: Optional[str]) -> List[str]:
    return list(CONTEXT_CATEGORIES.get(context or '', ['all']))


def count_categories(results: List[ResultItem]) -> Dict[str, int]:
    """Result count per module tag plus the 'all' total."""
    counts = {'all': len(results)}
    for item in results:
        if item.module:
            counts[item.module] = counts.get(item.module, 0) + 1
    return counts


class SearchSession:
    """Search state for one user / one search box."""

    def __init__(self, history: Optional[SearchHistory] = None, context: str = DEFAULT_CONTEXT):
        self.query = ''
        self.filters: Dict[str, str] = {}
        self.parsed_query: ParsedQuery = parse_query('')
        self.category = 'all'
        self.context = context
        self.results: List[ResultItem] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self.history = history
        self._generation = 0

    # ── Query / filters ──────────────────────────────────────────

    def _reparse(self) -> None:
        if self.filters:
            self.parsed_query = with_filters(self.query, self.filters)
        else:
            self.parsed_query = parse_query(self.query)

    def set_query(self, text: Optional[str]) -> ParsedQuery:
        self.query = text or ''
        self._reparse()
        return self.parsed_query

    def add_filter(self, key: str, value: str) -> ParsedQuery:
        key = (key or '').lower()
        if key not in FILTER_TOKENS:
            raise ValueError(f"Unknown filter '{key}'")
        self.filters = {**self.filters, key: value}
        self._reparse()
        return self.parsed_query

    def remove_filter(self, key: str) -> ParsedQuery:
        self.filters = {k: v for k, v in self.filters.items() if k != (key or '').lower()}
        self._reparse()
        return self.parsed_query

    def clear_filters(self) -> ParsedQuery:
        self.filters = {}
        self._reparse()
        return self.parsed_query

    def set_category(self, category: str) -> None:
        self.category = category or 'all'

    def set_context(self, context: str) -> None:
        self.context = context or DEFAULT_CONTEXT
        self.category = 'all'

    def clear(self) -> None:
        """Reset text, filters and results (history is kept)."""
        self._generation += 1
        self.query = ''
        self.filters = {}
        self.parsed_query = parse_query('')
        self.results = []
        self.is_loading = False
        self.error = None

    # ── Running searches ─────────────────────────────────────────

    async def run(
        self,
        coordinator: SearchCoordinator,
        logged_user_id: Optional[str] = None,
        remote: bool = True,
        parsed_query: Optional[ParsedQuery] = None,
        category: Optional[str] = None
    ) -> Optional[SearchOutcome]:
        """
        Search the current parsed query.

        Callers sharing one session across threads pass `parsed_query` and
        `category` explicitly; the session's own query state is then left
        untouched and history records the serialized query.

        Returns the final outcome, the aborted outcome when superseded, or
        None when the pipeline failed (the error is kept in `self.error`).
        """
        if parsed_query is None:
            parsed_query = self.parsed_query
            history_text = self.query
        else:
            history_text = serialize_query(parsed_query)
        category = category or self.category

        self._generation += 1
        generation = self._generation
        self.is_loading = True
        self.error = None

        def apply_partial(outcome: SearchOutcome) -> None:
            if generation == self._generation:
                self.results = outcome.results
                self.is_loading = True

        try:
            outcome = await coordinator.search(
                parsed_query.raw,
                category=category,
                logged_user_id=logged_user_id,
                on_partial=apply_partial,
                remote=remote,
            )
        except SearchPipelineError as e:
            if generation == self._generation:
                self.is_loading = False
                self.error = str(e)
            logger.warning(f"Session search failed: {e}")
            return None

        if outcome.aborted or generation != self._generation:
            return outcome

        self.results = outcome.results
        self.is_loading = False
        if self.history is not None and history_text.strip():
            self.history.add(history_text)
        return outcome

    # ── Derived views ────────────────────────────────────────────

    @property
    def filtered_results(self) -> List[ResultItem]:
        if self.category == 'all':
            return list(self.results)
        return [item for item in self.results if item.module == self.category]

    @property
    def category_counts(self) -> Dict[str, int]:
        return count_categories(self.results)

    @property
    def available_categories(self) -> List[str]:
        return categories_for_context(self.context)

    @property
    def search_history(self) -> List[str]:
        return self.history.items() if self.history is not None else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query': self.query,
            'parsed_query': self.parsed_query.to_dict(),
            'filters': dict(self.filters),
            'category': self.category,
            'context': self.context,
            'results': [item.to_dict() for item in self.filtered_results],
            'category_counts': self.category_counts,
            'available_categories': self.available_categories,
            'is_loading': self.is_loading,
            'error': self.error,
        }
