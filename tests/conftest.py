import asyncio
import json

import pytest

from fedsearch_app.search.errors import SearchCancelled


LOGGED_USER = "100"


@pytest.fixture
def local_chats():
    return [
        {
            "chatid": "c1",
            "title": "Alice Smith",
            "chat_type": 1,
            "score": 5,
            "recipantssummary": json.dumps([
                {"zuid": "100", "dname": "Me"},
                {"zuid": "200", "dname": "Alice Smith"},
            ]),
        },
        {"chatid": "c2", "title": "#alpha-team", "chat_type": 8, "score": 9},
        {
            "chatid": "c3",
            "title": "Bob Jones",
            "chat_type": 1,
            "score": 1,
            "recipantssummary": [
                {"zuid": "100", "dname": "Me"},
                {"zuid": "300", "dname": "Bob Jones"},
            ],
        },
    ]


@pytest.fixture
def local_users():
    return [
        {"zuid": "200", "full_name": "Alice Smith", "email": "alice@example.com"},
        {"zuid": "400", "full_name": "Alan Turing", "email": "alan@example.com"},
        {"zuid": "500", "full_name": "Carol White", "email": "carol@example.com"},
    ]


class FakeModule:
    """Module fetch stub: fixed records, optional delay or failure, call log."""

    def __init__(self, records=None, delay=0.0, error=None):
        self.records = list(records or [])
        self.delay = delay
        self.error = error
        self.calls = []

    async def __call__(self, parsed_query, token):
        self.calls.append(parsed_query.trimmed)
        if self.delay:
            await asyncio.sleep(self.delay)
        if token.cancelled:
            raise SearchCancelled(token.invocation_id)
        if self.error is not None:
            raise self.error
        return [dict(r) for r in self.records]


@pytest.fixture
def fake_module():
    return FakeModule
