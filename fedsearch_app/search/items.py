"""
================================================================================
FedSearch v1.0 - Result Items
================================================================================
Module-tagged search results.

Every result, local or remote, is a ResultItem wrapping the raw record the
source returned. Module-specific behaviour lives in one ModuleKind per
module tag:

  - display_fields(record) -> text fields used for scoring
  - canonical_id(record)   -> stable string id for exclusion/dedup
  - dedup_key(item)        -> key used to collapse duplicates

  users                          -> PersonKind        (id: zuid)
  chats/channels/bots/threads    -> ConversationKind  (id: chatid)
  messages                       -> MessageKind       (id: msguid)
  files/department/widgets/...   -> ModuleKind        (id: id)
================================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence


ORIGIN_LOCAL = 'local'
ORIGIN_REMOTE = 'remote'

DEFAULT_MODULE_WEIGHTS = {
    'users': 1.5,
    'chats': 1.4,
    'channels': 1.2,
    'department': 1.1,
    'messages': 1.0,
    'files': 0.95,
    'bots': 0.9,
    'threads': 0.85,
    'widgets': 0.75,
    'apps': 0.75,
    'connections': 0.6,
    'settings': 0.6,
}

# Conversation type codes used by the chat backend
ONE_TO_ONE_CHAT_TYPE = '1'
CHAT_TYPE_MODULES = {
    '8': 'channels',
    '1': 'users',
    '11': 'threads',
    '9': 'bots',
}


def chat_type_to_module(chat_type: Any) -> str:
    """Map a conversation type code to a module tag ('' when unmapped)."""
    return CHAT_TYPE_MODULES.get(str(chat_type), '')


def is_one_to_one(record: Dict[str, Any]) -> bool:
    return str(record.get('chat_type')) == ONE_TO_ONE_CHAT_TYPE


def id_string(value: Any) -> Optional[str]:
    if value is None or value == '':
        return None
    return str(value)


class ModuleKind:
    """Behaviour shared by modules without special handling."""

    id_field = 'id'
    field_names: Sequence[str] = ('name', 'title', 'description', 'full_name')
    # Which exclusion set filters this module's remote results ('chats', 'users' or None)
    exclusion: Optional[str] = None

    def __init__(self, module: str, field_names: Optional[Sequence[str]] = None):
        self.module = module
        if field_names is not None:
            self.field_names = tuple(field_names)

    def canonical_id(self, record: Dict[str, Any]) -> Optional[str]:
        return id_string(record.get(self.id_field))

    def display_fields(self, record: Dict[str, Any]) -> List[str]:
        fields = []
        for name in self.field_names:
            value = record.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                value = str(value)
            if isinstance(value, str) and value:
                fields.append(value)
        return fields

    def dedup_key(self, item: 'ResultItem') -> str:
        module = item.module or 'unknown'
        ident = item.canonical_id or id_string(item.record.get('name'))
        if ident is None:
            # No usable identity: never collapses with anything else
            ident = f"#{id(item)}"
        return f"{module}::{ident}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.module!r}>"


class PersonKind(ModuleKind):
    """People. Duplicates from different modules collapse by normalized name."""

    id_field = 'zuid'
    field_names = ('full_name', 'email', 'title', 'handle', 'description')
    exclusion = 'users'

    def dedup_key(self, item: 'ResultItem') -> str:
        record = item.record
        name = record.get('full_name') or record.get('name') or record.get('title')
        if isinstance(name, str) and name.strip():
            return f"users::name::{' '.join(name.lower().split())}"
        return super().dedup_key(item)


class ConversationKind(ModuleKind):
    """Chat-like entities keyed by chat id."""

    id_field = 'chatid'
    exclusion = 'chats'


class MessageKind(ModuleKind):
    id_field = 'msguid'
    field_names = ('message', 'msg', 'sendername', 'ctitle')


MODULE_KINDS: Dict[str, ModuleKind] = {
    'users': PersonKind('users'),
    'chats': ConversationKind(
        'chats', ('dname', 'recipantssummary', 'recipientssumm', 'name', 'title')
    ),
    'channels': ConversationKind('channels', ('title',)),
    'bots': ConversationKind('bots'),
    'threads': ConversationKind('threads'),
    'messages': MessageKind('messages'),
    'files': ModuleKind('files'),
    'department': ModuleKind('department'),
    'widgets': ModuleKind('widgets'),
    'apps': ModuleKind('apps'),
    'connections': ModuleKind('connections'),
    'settings': ModuleKind('settings'),
}

_GENERIC_KIND = ModuleKind('')


def get_module_kind(module: Optional[str]) -> ModuleKind:
    """Kind for a module tag, falling back to the generic behaviour."""
    return MODULE_KINDS.get(module or '', _GENERIC_KIND)


@dataclass
class ResultItem:
    """
    One search result.

    `record` is the raw source payload; it is treated as read-only.
    Score fields are filled in by the scorer (remote items only - local
    items keep their locally computed order).
    """
    module: str
    origin: str
    canonical_id: Optional[str]
    record: Dict[str, Any] = field(default_factory=dict)
    score: Optional[float] = None
    match_type: Optional[str] = None
    match_score: Optional[float] = None

    @property
    def kind(self) -> ModuleKind:
        return get_module_kind(self.module)

    def display_fields(self) -> List[str]:
        return self.kind.display_fields(self.record)

    def dedup_key(self) -> str:
        return self.kind.dedup_key(self)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to the JSON shape the UI expects (record + underscore meta)."""
        data = dict(self.record)
        data.update({
            'id': self.canonical_id,
            '_module': self.module,
            '_source': self.origin,
        })
        if self.score is not None:
            data['_score'] = self.score
            data['_matchType'] = self.match_type
            data['_matchScore'] = self.match_score
        return data


def default_get_fields(item: ResultItem) -> List[str]:
    return item.display_fields()


def default_get_dedup_key(item: ResultItem) -> str:
    return item.dedup_key()


def make_weight_getter(weights: Optional[Dict[str, float]] = None):
    """Build get_weight(item) from overrides layered on the defaults."""
    table = dict(DEFAULT_MODULE_WEIGHTS)
    table.update(weights or {})

    def get_weight(item: ResultItem) -> Optional[float]:
        return table.get(item.module)

    return get_weight
