"""
================================================================================
FedSearch v1.0 - Match Scorer
================================================================================
Pure scoring engine. Every function is deterministic: (input) -> output.

Score is based on how a keyword hits a field:
  - exact:      1.5  (field equals keyword)
  - startsWith: 1.0  (field starts with keyword)
  - afterSpace: 0.6  (keyword starts a later word)
  - middle:     0.3  (keyword anywhere inside the field)

Final score = match score * module weight, rounded to 6 decimals.
Ties keep discovery order (Python's sort is stable).
================================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, TypeVar


EXACT = 'exact'
STARTS_WITH = 'startsWith'
AFTER_SPACE = 'afterSpace'
MIDDLE = 'middle'

DEFAULT_MATCH_SCORES = {
    EXACT: 1.5,
    STARTS_WITH: 1.0,
    AFTER_SPACE: 0.6,
    MIDDLE: 0.3,
}

T = TypeVar('T')


@dataclass(frozen=True)
class ScoreMatch:
    """How one keyword (or phrase) matched one field."""
    type: str
    score: float


@dataclass
class ScorerConfig:
    """Overridable scoring constants."""
    match_scores: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_MATCH_SCORES))

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, float]] = None) -> 'ScorerConfig':
        scores = dict(DEFAULT_MATCH_SCORES)
        for key, value in (overrides or {}).items():
            if key in scores:
                scores[key] = float(value)
        return cls(match_scores=scores)


DEFAULT_SCORER_CONFIG = ScorerConfig()


def detect_match(
    keyword: Optional[str],
    value: Optional[str],
    scores: Optional[Dict[str, float]] = None
) -> Optional[ScoreMatch]:
    """
    Classify how `keyword` matches a single field value.

    Case-insensitive; both operands are trimmed. Returns None when either is
    empty or there is no match.
    """
    if not keyword or not value:
        return None
    scores = scores or DEFAULT_MATCH_SCORES
    k = keyword.lower().strip()
    f = value.lower().strip()
    if not k or not f:
        return None

    if f == k:
        return ScoreMatch(EXACT, scores[EXACT])
    if f.startswith(k):
        return ScoreMatch(STARTS_WITH, scores[STARTS_WITH])
    if (' ' + k) in f:
        return ScoreMatch(AFTER_SPACE, scores[AFTER_SPACE])
    if k in f:
        return ScoreMatch(MIDDLE, scores[MIDDLE])
    return None


def best_field_match(
    keyword: str,
    fields: Iterable[str],
    scores: Optional[Dict[str, float]] = None
) -> Optional[ScoreMatch]:
    """Best match of one keyword across all fields (first seen wins ties)."""
    best = None
    for value in fields:
        match = detect_match(keyword, value, scores)
        if match and (best is None or match.score > best.score):
            best = match
    return best


def score_query(
    keywords: Sequence[str],
    phrase: str,
    fields: Sequence[str],
    scores: Optional[Dict[str, float]] = None
) -> Optional[ScoreMatch]:
    """
    Multi-keyword scoring.

    Strategy:
      1. Score the whole phrase (only when there are 2+ keywords)
      2. Score each keyword independently, keep the best
      3. Return whichever of the two is higher
    """
    phrase_match = best_field_match(phrase, fields, scores) if len(keywords) > 1 else None

    keyword_match = None
    for keyword in keywords:
        match = best_field_match(keyword, fields, scores)
        if match and (keyword_match is None or match.score > keyword_match.score):
            keyword_match = match

    best = None
    for candidate in (phrase_match, keyword_match):
        if candidate and (best is None or candidate.score > best.score):
            best = candidate
    return best


def compute_score(
    item: T,
    keywords: Sequence[str],
    phrase: str,
    fields: Sequence[str],
    weight: Optional[float] = None,
    config: ScorerConfig = DEFAULT_SCORER_CONFIG
) -> Optional[T]:
    """
    Score a single item.

    Args:
        item: A ResultItem (any dataclass with score/match_type/match_score)
        keywords: Parsed keywords
        phrase: Whole query phrase
        fields: Text fields of the item to match against
        weight: Module weight multiplier (unknown/0 -> 1)
        config: Scoring constants

    Returns:
        A scored copy of the item, or None if nothing matched
    """
    match = score_query(keywords, phrase, fields, config.match_scores)
    if match is None:
        return None

    final_score = match.score * (weight or 1)
    return replace(
        item,
        score=round(final_score, 6),
        match_type=match.type,
        match_score=round(match.score, 6),
    )


def rank_results(
    items: Iterable[T],
    keywords: Sequence[str],
    phrase: str,
    get_fields: Callable[[T], Sequence[str]],
    get_weight: Callable[[T], Optional[float]],
    config: ScorerConfig = DEFAULT_SCORER_CONFIG
) -> List[T]:
    """Score every item, drop non-matches, sort by score descending."""
    scored = []
    for item in items:
        result = compute_score(item, keywords, phrase, get_fields(item), get_weight(item), config)
        if result is not None:
            scored.append(result)
    return sorted(scored, key=lambda r: r.score, reverse=True)


def deduplicate_by(items: Iterable[T], get_key: Callable[[T], Hashable]) -> List[T]:
    """
    Collapse items sharing a key, keeping the highest score of each group.

    Output is re-sorted by score descending; equal scores keep the order in
    which their keys were first seen.
    """
    seen: Dict[Hashable, T] = {}
    for item in items:
        key = get_key(item)
        current = seen.get(key)
        if current is None or (item.score or 0) > (current.score or 0):
            seen[key] = item
    return sorted(seen.values(), key=lambda r: r.score or 0, reverse=True)
