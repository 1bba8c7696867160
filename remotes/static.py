"""
Static (mock) module connector.

Serves an in-memory record set with simulated network latency. Used in
development when no search backend is configured, and in tests.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from fedsearch_app.search.errors import SearchCancelled
from fedsearch_app.search.items import get_module_kind
from fedsearch_app.search.orchestrator import GLOBAL_MODULE, CancellationToken
from fedsearch_app.search.query_parser import ParsedQuery

from .base import BaseModuleConnector

PERSON_FIELDS = ('full_name', 'email', 'display_name')
GLOBAL_FIELDS = ('title', 'name')


class StaticModuleConnector(BaseModuleConnector):
    """Filters a fixed list of records for one module."""

    name = "Static Module"
    source_tag = "mock-server"

    def __init__(self, module: str, records: Optional[Sequence[Dict[str, Any]]] = None, latency: float = 0.0):
        super().__init__(module)
        self.records = list(records or [])
        self.latency = latency
        self.name = f"Static {module}"
        self.calls = 0

    def _matches(self, record: Dict[str, Any], query: str) -> bool:
        if self.module == 'users':
            return any(
                isinstance(record.get(f), str) and record[f].lower().startswith(query)
                for f in PERSON_FIELDS
            )
        if self.module == GLOBAL_MODULE:
            fields = [record[f] for f in GLOBAL_FIELDS if isinstance(record.get(f), str)]
        else:
            fields = get_module_kind(self.module).display_fields(record)
        return any(query in value.lower() for value in fields)

    async def search(self, parsed_query: ParsedQuery, token: CancellationToken) -> List[Dict[str, Any]]:
        self.calls += 1
        if self.latency:
            await asyncio.sleep(self.latency)
        if token.cancelled:
            raise SearchCancelled(token.invocation_id)

        query = ' '.join(parsed_query.keywords).lower()
        if not query:
            return list(self.records)
        return [record for record in self.records if self._matches(record, query)]
