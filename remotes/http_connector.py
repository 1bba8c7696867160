"""
================================================================================
FedSearch v1.0 - HTTP Module Connector
================================================================================
Searches one remote module over its REST endpoint:

    GET <base_url>/<endpoint>/search?q=<keywords>&phrase=<phrase>&<filters>

The response is either a JSON list or an object holding the list under the
module name (or "results"). Records are normalized so each module's id and
display name are always present.
================================================================================
"""

import asyncio
import logging
import threading
import weakref
from typing import Any, Callable, Dict, List, Optional

import httpx

from fedsearch_app.search.errors import ModuleFetchError
from fedsearch_app.search.orchestrator import GLOBAL_MODULE, CancellationToken
from fedsearch_app.search.query_parser import ParsedQuery

from .base import BaseModuleConnector

logger = logging.getLogger(__name__)

USER_AGENT = "FedSearch/1.0"


def build_query_params(parsed_query: ParsedQuery) -> List[tuple]:
    """Query string parameters for a parsed query (filters after q/phrase)."""
    params = []
    if parsed_query.keywords:
        params.append(('q', ' '.join(parsed_query.keywords)))
    if parsed_query.phrase:
        params.append(('phrase', parsed_query.phrase))
    for key, value in parsed_query.filters.items():
        params.append((key, value))
    return params


def _normalize_chat(record: Dict[str, Any]) -> Dict[str, Any]:
    record['id'] = record.get('chatid') or record.get('id')
    record['title'] = record.get('title') or record.get('name') or 'Untitled Chat'
    return record


def _normalize_user(record: Dict[str, Any]) -> Dict[str, Any]:
    record['id'] = record.get('zuid') or record.get('id')
    record['name'] = record.get('dname') or record.get('name') or 'Unknown User'
    return record


def _normalize_channel(record: Dict[str, Any]) -> Dict[str, Any]:
    record['id'] = record.get('chid') or record.get('id')
    record['name'] = record.get('cn') or record.get('name') or 'Untitled Channel'
    return record


def _normalize_message(record: Dict[str, Any]) -> Dict[str, Any]:
    record['id'] = record.get('msguid') or record.get('id')
    return record


NORMALIZERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    GLOBAL_MODULE: _normalize_chat,
    'chats': _normalize_chat,
    'users': _normalize_user,
    'channels': _normalize_channel,
    'messages': _normalize_message,
}

def _retry_after(response: httpx.Response) -> Optional[float]:
    """Retry-After header in seconds (HTTP-date values are ignored)."""
    value = response.headers.get('Retry-After')
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


# Payload keys / URL segments that differ from the module tag
ENDPOINTS = {GLOBAL_MODULE: 'chats'}


class HttpModuleConnector(BaseModuleConnector):
    """
    REST connector for one module.

    Owned clients are pooled per event loop: each Flask worker thread runs
    its own loop (see run_async) and an httpx client must stay on the loop
    that opened its connections. close() shuts every pooled client.
    """

    name = "HTTP Module"

    def __init__(
        self,
        module: str,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        super().__init__(module)
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.endpoint = ENDPOINTS.get(module, module)
        self.name = f"HTTP {module}"
        self._headers = dict(headers or {})
        self._transport = transport
        # Caller-provided client, used as-is and never closed here
        self._client = client
        self._loop_clients: 'weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, httpx.AsyncClient]' = (
            weakref.WeakKeyDictionary()
        )
        self._clients_lock = threading.Lock()

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.endpoint}/search"

    @property
    def open_clients(self) -> int:
        with self._clients_lock:
            return sum(1 for c in self._loop_clients.values() if not c.is_closed)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client of the running event loop."""
        if self._client is not None:
            return self._client
        loop = asyncio.get_running_loop()
        with self._clients_lock:
            client = self._loop_clients.get(loop)
            if client is None or client.is_closed:
                client = httpx.AsyncClient(
                    timeout=self.timeout,
                    transport=self._transport,
                    headers={
                        'User-Agent': USER_AGENT,
                        'Accept': 'application/json',
                        **self._headers,
                    }
                )
                self._loop_clients[loop] = client
                logger.debug(f"Opened HTTP client for '{self.module}' ({len(self._loop_clients)} loops)")
        return client

    def close(self) -> None:
        """
        Close every pooled client.

        Call from outside a running event loop (shutdown hook). Clients of
        loops running in other threads are closed on those loops.
        """
        with self._clients_lock:
            pooled = list(self._loop_clients.items())
            self._loop_clients.clear()

        for loop, client in pooled:
            if client.is_closed:
                continue
            if loop.is_closed():
                logger.debug(f"Dropping HTTP client of closed loop for '{self.module}'")
                continue
            if loop.is_running():
                asyncio.run_coroutine_threadsafe(client.aclose(), loop)
            else:
                loop.run_until_complete(client.aclose())

    async def search(self, parsed_query: ParsedQuery, token: CancellationToken) -> List[Dict[str, Any]]:
        client = await self._get_client()
        params = build_query_params(parsed_query)

        try:
            response = await client.get(self.url, params=params)
        except httpx.RequestError as e:
            raise ModuleFetchError(self.module, f"request failed: {e}") from e

        if not response.is_success:
            raise ModuleFetchError(
                self.module,
                f"API Error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                retry_after=_retry_after(response),
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ModuleFetchError(self.module, f"invalid JSON payload: {e}") from e

        records = self._extract_records(data)
        normalize = NORMALIZERS.get(self.module)
        if normalize is None:
            return [dict(r) for r in records]
        return [normalize(dict(r)) for r in records]

    def _extract_records(self, data: Any) -> List[Dict[str, Any]]:
        if isinstance(data, list):
            records = data
        elif isinstance(data, dict):
            records = data.get(self.endpoint) or data.get('results') or []
        else:
            records = None

        if not isinstance(records, list):
            raise ModuleFetchError(self.module, f"unexpected payload type {type(data).__name__}")
        return [r for r in records if isinstance(r, dict)]
