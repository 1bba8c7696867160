"""
================================================================================
FedSearch v1.0 - Participants & Exclusion Sets
================================================================================
Works out which entities the local dataset already represents, so remote
results can drop duplicates before ranking.

One-to-one conversations name a single counterpart. Finding that "other
party" is a heuristic chain - the first resolver that returns an id wins:

  1. by_logged_in_user    - the participant who is not the logged-in user
  2. by_title             - the participant whose display name is the title
  3. by_sole_participant  - the only participant recorded

Malformed participant data never raises; it simply resolves to None and the
caller falls back to the conversation's own id.
================================================================================
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set

from .items import is_one_to_one

logger = logging.getLogger(__name__)

Participant = Dict[str, Any]
Resolver = Callable[[List[Participant], Optional[str], Optional[str]], Optional[str]]


def _participant_id(participant: Participant) -> Optional[str]:
    zuid = participant.get('zuid')
    if zuid is None or zuid == '':
        return None
    return str(zuid)


def decode_participants(summary: Any) -> Optional[List[Participant]]:
    """
    Decode a participant summary (JSON string or list) into dicts.

    Returns None when the data is missing or malformed.
    """
    if summary is None or summary == '':
        return None
    if isinstance(summary, str):
        try:
            summary = json.loads(summary)
        except ValueError as e:
            logger.debug(f"Participant summary is not valid JSON: {e}")
            return None
    if not isinstance(summary, list):
        return None
    return [p for p in summary if isinstance(p, dict)]


# =============================================================================
# RESOLVER STRATEGIES
# =============================================================================

def by_logged_in_user(participants: List[Participant], logged_user_id: Optional[str],
                      title: Optional[str]) -> Optional[str]:
    if not logged_user_id:
        return None
    for participant in participants:
        pid = _participant_id(participant)
        if pid is not None and pid != str(logged_user_id):
            return pid
    return None


def by_title(participants: List[Participant], logged_user_id: Optional[str],
             title: Optional[str]) -> Optional[str]:
    if not title:
        return None
    for participant in participants:
        if participant.get('dname') == title:
            return _participant_id(participant)
    return None


def by_sole_participant(participants: List[Participant], logged_user_id: Optional[str],
                        title: Optional[str]) -> Optional[str]:
    if len(participants) == 1:
        return _participant_id(participants[0])
    return None


OTHER_PARTY_RESOLVERS: Sequence[Resolver] = (
    by_logged_in_user,
    by_title,
    by_sole_participant,
)


def resolve_other_party(
    summary: Any,
    logged_user_id: Optional[str] = None,
    title: Optional[str] = None,
    resolvers: Sequence[Resolver] = OTHER_PARTY_RESOLVERS
) -> Optional[str]:
    """
    Find the counterpart of a one-to-one conversation.

    Args:
        summary: Participant list or its JSON encoding
        logged_user_id: Current user's id, if known
        title: Conversation title (usually the counterpart's display name)
        resolvers: Ordered strategies; first non-None result wins

    Returns:
        Counterpart id as a string, or None if unresolved
    """
    participants = decode_participants(summary)
    if not participants:
        return None
    for resolver in resolvers:
        other = resolver(participants, logged_user_id, title)
        if other is not None:
            return other
    return None


def conversation_id(record: Dict[str, Any], logged_user_id: Optional[str] = None) -> Optional[str]:
    """
    Canonical id of a chat-like record.

    One-to-one conversations are identified by the counterpart when it can
    be resolved, everything else by its chat id.
    """
    if is_one_to_one(record):
        other = resolve_other_party(record.get('recipantssummary'), logged_user_id, record.get('title'))
        if other:
            return other
    chat_id = record.get('chatid')
    return str(chat_id) if chat_id not in (None, '') else None


def person_id(record: Dict[str, Any]) -> Optional[str]:
    """Canonical id of a locally held person record."""
    for key in ('Zuid', 'zuid', 'id'):
        value = record.get(key)
        if value not in (None, ''):
            return str(value)
    return None


# =============================================================================
# EXCLUSION SETS
# =============================================================================

@dataclass
class ExclusionSet:
    """Identifiers already represented locally."""
    chat_ids: Set[str] = field(default_factory=set)
    user_ids: Set[str] = field(default_factory=set)

    def for_kind(self, exclusion: Optional[str]) -> Optional[Set[str]]:
        """The set that filters a module kind ('chats', 'users' or None)."""
        if exclusion == 'chats':
            return self.chat_ids
        if exclusion == 'users':
            return self.user_ids
        return None

    def copy(self) -> 'ExclusionSet':
        return ExclusionSet(set(self.chat_ids), set(self.user_ids))


def build_exclusion_sets(
    chats: Iterable[Dict[str, Any]],
    users: Iterable[Dict[str, Any]],
    logged_user_id: Optional[str] = None
) -> ExclusionSet:
    """
    Collect the ids of every chat and person the local dataset holds.

    One-to-one conversations also contribute their counterpart to the
    person set.
    """
    exclusions = ExclusionSet()

    for chat in chats:
        chat_id = chat.get('chatid')
        if chat_id not in (None, ''):
            exclusions.chat_ids.add(str(chat_id))
        if is_one_to_one(chat):
            other = resolve_other_party(chat.get('recipantssummary'), logged_user_id, chat.get('title'))
            if other:
                exclusions.user_ids.add(other)

    for user in users:
        uid = person_id(user)
        if uid:
            exclusions.user_ids.add(uid)

    return exclusions
