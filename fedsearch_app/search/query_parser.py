"""
================================================================================
FedSearch v1.0 - Query Parser
================================================================================
Turns raw search input into a structured ParsedQuery.

Supported filter tokens:
  from:@alice  to:@bob  in:#general
  after:2024-01-01  before:2024-06-01  on:2024-03-10
  filenamehas:report  linkhas:github.com  filehas:pdf  fileobject:invoice

Unknown "key:value" pairs are left in the text and searched literally.
Parsing never fails - malformed input degrades to an empty or partial parse.
================================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence


FILTER_TOKENS = (
    'from', 'to', 'in', 'after', 'before', 'on',
    'filenamehas', 'linkhas', 'filehas', 'fileobject',
)

# ASCII \w keeps token keys to [A-Za-z0-9_]
TOKEN_RE = re.compile(r'(\w+):(\S+)', re.ASCII)
WHITESPACE_RE = re.compile(r'\s+')


@dataclass(frozen=True)
class ParsedQuery:
    """
    Structured view of one search input.

    Re-derived (never mutated) whenever the raw text or filter set changes.
    """
    raw: str = ''
    trimmed: str = ''
    keywords: List[str] = field(default_factory=list)
    filters: Dict[str, str] = field(default_factory=dict)

    @property
    def phrase(self) -> str:
        """Query text used for whole-phrase matching (same as trimmed)."""
        return self.trimmed

    @property
    def is_empty(self) -> bool:
        return not self.keywords and not self.filters

    @property
    def is_multi_word(self) -> bool:
        return len(self.keywords) > 1

    def to_dict(self) -> Dict:
        """Convert to JSON-serializable dictionary."""
        return {
            'raw': self.raw,
            'trimmed': self.trimmed,
            'phrase': self.phrase,
            'keywords': list(self.keywords),
            'filters': dict(self.filters),
            'is_empty': self.is_empty,
            'is_multi_word': self.is_multi_word,
        }


def parse_query(raw: Optional[str] = '', valid_tokens: Iterable[str] = FILTER_TOKENS) -> ParsedQuery:
    """
    Parse a raw query string into a ParsedQuery.

    Args:
        raw: Text as typed by the user
        valid_tokens: Recognized filter keys (case-insensitive)

    Returns:
        ParsedQuery with filters extracted and remaining text normalized

    Examples:
        "from:@alice project" -> keywords ["project"], filters {"from": "alice"}
        "foo:bar baz"         -> keywords ["foo:bar", "baz"], filters {}
    """
    raw = raw or ''
    vocabulary = {token.lower() for token in valid_tokens}
    filters: Dict[str, str] = {}

    def _extract(match: 're.Match') -> str:
        key = match.group(1).lower()
        if key not in vocabulary:
            return match.group(0)
        value = match.group(2).lstrip('@#')
        # "from:@" carries no value; drop the token without recording a filter
        if value:
            filters[key] = value
        return ' '

    remaining = TOKEN_RE.sub(_extract, raw)
    trimmed = WHITESPACE_RE.sub(' ', remaining).strip()
    keywords = trimmed.split(' ') if trimmed else []

    return ParsedQuery(raw=raw, trimmed=trimmed, keywords=keywords, filters=filters)


def serialize_query(pq: ParsedQuery) -> str:
    """
    Serialize a ParsedQuery back to a stable string.

    Format: "<phrase> <key:value ...>" with filters sorted by key.
    """
    filter_str = ' '.join(f"{key}:{value}" for key, value in sorted(pq.filters.items()))
    return ' '.join(part for part in (pq.trimmed, filter_str) if part)


def with_filters(
    raw: str,
    filters: Mapping[str, str],
    valid_tokens: Sequence[str] = FILTER_TOKENS
) -> ParsedQuery:
    """Re-derive a ParsedQuery from typed text plus an explicit filter set."""
    filter_str = ' '.join(f"{key}:{value}" for key, value in filters.items() if value)
    return parse_query(f"{raw or ''} {filter_str}", valid_tokens)


def needs_server_fetch(pq: ParsedQuery, min_len: int = 3) -> bool:
    """Advisory: is this query worth a round trip to the remote modules?"""
    return len(pq.trimmed) >= min_len or bool(pq.filters)
