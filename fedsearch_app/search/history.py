"""
Search history.

Most-recent-first list of distinct past queries, stored as a JSON array in
the global key-value store. Anything unreadable in the store is treated as
an empty history.
"""

import logging
from typing import List, Optional

from ..cache import GlobalCache

logger = logging.getLogger(__name__)

HISTORY_KEY = '_adv_search_history'
MAX_HISTORY = 20


class SearchHistory:
    def __init__(self, store: GlobalCache, key: str = HISTORY_KEY, max_items: int = MAX_HISTORY):
        self.store = store
        self.key = key
        self.max_items = max_items

    def items(self) -> List[str]:
        data = self.store.get_json(self.key)
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, str)][:self.max_items]

    def add(self, query: Optional[str]) -> List[str]:
        """Record a query at the front, dropping any earlier copy of it."""
        text = (query or '').strip()
        if not text:
            return self.items()
        history = [text] + [entry for entry in self.items() if entry != text]
        history = history[:self.max_items]
        self.store.set_json(self.key, history)
        logger.debug(f"History: recorded '{text}' ({len(history)} entries)")
        return history

    def remove(self, query: str) -> List[str]:
        history = [entry for entry in self.items() if entry != query]
        self.store.set_json(self.key, history)
        return history

    def clear(self) -> None:
        self.store.delete(self.key)
