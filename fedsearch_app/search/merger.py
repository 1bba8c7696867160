"""
Result merging.

Local results always come first, untouched and in their local order.
Remote results are ranked, collapsed by dedup key, and anything that
duplicates a local result is dropped.
"""

import logging
from typing import Callable, List, Optional, Sequence

from .items import ResultItem, default_get_dedup_key, default_get_fields
from .query_parser import ParsedQuery
from .scorer import DEFAULT_SCORER_CONFIG, ScorerConfig, deduplicate_by, rank_results

logger = logging.getLogger(__name__)


def merge_results(
    local_items: Sequence[ResultItem],
    remote_items: Sequence[ResultItem],
    parsed_query: ParsedQuery,
    get_weight: Callable[[ResultItem], Optional[float]],
    get_fields: Callable[[ResultItem], Sequence[str]] = default_get_fields,
    get_dedup_key: Callable[[ResultItem], str] = default_get_dedup_key,
    scorer_config: ScorerConfig = DEFAULT_SCORER_CONFIG,
    max_results: Optional[int] = None
) -> List[ResultItem]:
    """
    Combine local and remote results into one ordered list.

    Args:
        local_items: Local-stage output (kept as-is, always first)
        remote_items: Flattened remote module output
        parsed_query: Query the items are scored against
        get_weight: Module weight for an item
        get_fields: Text fields of an item used for scoring
        get_dedup_key: Key collapsing duplicates across sources
        scorer_config: Scoring constants
        max_results: Optional cap on the final list

    Returns:
        local items + deduplicated, rank-sorted remote items
    """
    ranked = rank_results(
        remote_items, parsed_query.keywords, parsed_query.phrase,
        get_fields, get_weight, scorer_config,
    )
    unique_remote = deduplicate_by(ranked, get_dedup_key)

    local_keys = {get_dedup_key(item) for item in local_items}
    remote = [item for item in unique_remote if get_dedup_key(item) not in local_keys]

    logger.debug(
        f"Merged {len(local_items)} local + {len(remote)} remote "
        f"({len(remote_items)} raw, {len(ranked)} matched)"
    )

    merged = list(local_items) + remote
    if max_results:
        merged = merged[:max_results]
    return merged
