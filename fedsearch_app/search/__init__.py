"""
================================================================================
FedSearch v1.0 - Search Package
================================================================================
Federated search over a local dataset plus remote search modules.

Components:
  - query_parser.py - Free text + key:value filter tokens -> ParsedQuery
  - scorer.py       - Keyword/field match scoring, ranking, dedup
  - items.py        - Module-tagged ResultItem and per-module kinds
  - participants.py - One-to-one "other party" resolution, exclusion sets
  - local_search.py - Prefix filter over locally held chats/people
  - orchestrator.py - Concurrent remote fan-out with cancellation
  - merger.py       - Local-first merge of ranked remote results
  - cache.py        - Response cache (10 minute TTL)
  - coordinator.py  - Pipeline state machine and supersession
  - history.py      - Recent queries in the global key-value store
  - session.py      - Per-user query/filter/category state

Design:
  - Local results are published first, remote results merged afterwards
  - A newer search cancels any older one still waiting on remote modules
  - One failing module never fails the whole search
================================================================================
"""

from .coordinator import LocalDataset, SearchCoordinator, SearchOutcome, SearchState
from .errors import FedSearchError, ModuleFetchError, SearchCancelled, SearchPipelineError
from .history import SearchHistory
from .items import ResultItem
from .orchestrator import CancellationToken
from .query_parser import ParsedQuery, parse_query, serialize_query
from .session import SearchSession

__all__ = [
    'CancellationToken', 'FedSearchError', 'LocalDataset', 'ModuleFetchError',
    'ParsedQuery', 'ResultItem', 'SearchCancelled', 'SearchCoordinator',
    'SearchHistory', 'SearchOutcome', 'SearchPipelineError', 'SearchSession',
    'SearchState', 'parse_query', 'serialize_query',
]
