"""
Local search stage.

Fast, synchronous prefix filter over the locally held dataset. Its output is
published to the caller as the partial result set before any remote module
is contacted.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .items import ORIGIN_LOCAL, ResultItem, chat_type_to_module
from .participants import conversation_id, person_id

MAX_LOCAL_CHATS = 500
MAX_LOCAL_USERS = 100

_MARKER_RE = re.compile(r'^[@#]')


@dataclass
class LocalSearchResult:
    chats: List[ResultItem] = field(default_factory=list)
    users: List[ResultItem] = field(default_factory=list)

    @property
    def results(self) -> List[ResultItem]:
        """Chat matches first, then person matches."""
        return self.chats + self.users


def _record_score(record: Dict[str, Any]) -> float:
    try:
        return float(record.get('score') or 0)
    except (TypeError, ValueError):
        return 0.0


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ''


def search_local_chats(
    chats: Sequence[Dict[str, Any]],
    query_lower: str,
    logged_user_id: Optional[str] = None,
    limit: int = MAX_LOCAL_CHATS
) -> List[ResultItem]:
    """Chats whose title (minus a leading @/#) starts with the query."""
    matches = []
    for chat in chats[:limit]:
        title = _MARKER_RE.sub('', _text(chat.get('title')))
        if not title.lower().startswith(query_lower):
            continue
        record = dict(chat)
        record['title'] = title
        matches.append(ResultItem(
            module=chat_type_to_module(chat.get('chat_type')),
            origin=ORIGIN_LOCAL,
            canonical_id=conversation_id(chat, logged_user_id),
            record=record,
        ))
    # Source-provided relevance, stable for ties
    matches.sort(key=lambda item: _record_score(item.record), reverse=True)
    return matches


def search_local_users(
    users: Sequence[Dict[str, Any]],
    query_lower: str,
    represented_ids: Optional[set] = None,
    limit: int = MAX_LOCAL_USERS
) -> List[ResultItem]:
    """People whose name or email starts with the query."""
    represented_ids = represented_ids or set()
    matches = []
    for user in users[:limit]:
        uid = person_id(user)
        name = _text(user.get('full_name') or user.get('display_name'))
        email = _text(user.get('email'))
        if not (name.lower().startswith(query_lower) or email.lower().startswith(query_lower)):
            continue
        if uid is not None and uid in represented_ids:
            continue
        matches.append(ResultItem(module='users', origin=ORIGIN_LOCAL, canonical_id=uid, record=dict(user)))
    return matches


def run_local_search(
    chats: Sequence[Dict[str, Any]],
    users: Sequence[Dict[str, Any]],
    query_lower: str,
    logged_user_id: Optional[str] = None,
    max_chats: int = MAX_LOCAL_CHATS,
    max_users: int = MAX_LOCAL_USERS
) -> LocalSearchResult:
    """
    Run the local stage over a dataset snapshot.

    People already shown as a one-to-one conversation are not listed a
    second time.
    """
    chat_matches = search_local_chats(chats, query_lower, logged_user_id, max_chats)
    represented = {
        item.canonical_id for item in chat_matches
        if item.module == 'users' and item.canonical_id
    }
    user_matches = search_local_users(users, query_lower, represented, max_users)
    return LocalSearchResult(chats=chat_matches, users=user_matches)
