"""
================================================================================
FedSearch v1.0 - Base Module Connector
================================================================================
Abstract base class for remote search module connectors.

Every connector implements one method:
  search(parsed_query, token) -> list of raw records

Calling a connector instance runs the shared wrapper around search():
  - empty queries short-circuit to []
  - cancellation is checked before and after the call
  - records are copied and tagged with their source
  - failures are counted for the health view and re-raised

Status:
  - 429 responses put the module in RATE_LIMITED for Retry-After seconds
  - 5 consecutive failures put it OFFLINE for 5 minutes
  - while cooling down, is_available is False and the orchestrator skips it
================================================================================
"""

import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

from fedsearch_app.search.errors import ModuleFetchError, SearchCancelled
from fedsearch_app.search.items import get_module_kind
from fedsearch_app.search.orchestrator import GLOBAL_MODULE, CancellationToken
from fedsearch_app.search.query_parser import ParsedQuery

RATE_LIMIT_COOLDOWN = 60
OFFLINE_COOLDOWN = 300
MAX_FAILURES = 5


class ModuleStatus(Enum):
    """Current operational status of a module connector."""
    ONLINE = "online"
    RATE_LIMITED = "rate_limited"
    OFFLINE = "offline"
    UNKNOWN = "unknown"


class BaseModuleConnector(ABC):
    """
    Abstract base class for remote module connectors.

    Example:
        class ChannelsConnector(BaseModuleConnector):
            module = "channels"

            async def search(self, parsed_query, token):
                # Implementation here
                ...
    """

    # =========================================================================
    # CONNECTOR CONFIGURATION (Override in subclass)
    # =========================================================================

    id: str = "base"                 # Unique identifier
    module: str = ""                 # Module tag the records belong to
    name: str = "Base Module"        # Display name
    source_tag: str = "server"       # Value written to record['_source']
    timeout: float = 5.0             # Request timeout seconds

    def __init__(self, module: Optional[str] = None):
        if module is not None:
            self.module = module
            self.id = module
        self._status = ModuleStatus.UNKNOWN
        self._last_error: Optional[str] = None
        self._failure_count = 0
        self._cooldown_until = 0.0
        self._lock = threading.Lock()

    # =========================================================================
    # ABSTRACT METHODS (Must implement in subclass)
    # =========================================================================

    @abstractmethod
    async def search(self, parsed_query: ParsedQuery, token: CancellationToken) -> List[Dict[str, Any]]:
        """
        Search this module.

        Raises:
            SearchCancelled: when the token is cancelled mid-call
            ModuleFetchError: when the remote call fails
        """
        pass

    def close(self) -> None:
        """Release network resources (no-op by default)."""
        return None

    # =========================================================================
    # FETCH WRAPPER
    # =========================================================================

    async def __call__(self, parsed_query: ParsedQuery, token: CancellationToken) -> List[Dict[str, Any]]:
        if parsed_query.is_empty:
            return []

        token.raise_if_cancelled()
        try:
            records = await self.search(parsed_query, token)
        except SearchCancelled:
            raise
        except ModuleFetchError as e:
            if e.status_code == 429:
                retry_after = RATE_LIMIT_COOLDOWN if e.retry_after is None else e.retry_after
                self._handle_rate_limit(retry_after, str(e))
            else:
                self._handle_error(str(e))
            raise
        except Exception as e:
            self._handle_error(str(e))
            raise
        token.raise_if_cancelled()

        self._handle_success()
        return [self._tag(record) for record in records or [] if isinstance(record, dict)]

    def _tag(self, record: Dict[str, Any]) -> Dict[str, Any]:
        tagged = dict(record)
        # Global results carry their own module via chat_type
        if self.module and self.module != GLOBAL_MODULE:
            tagged.setdefault('_module', self.module)
        tagged['_source'] = self.source_tag
        return tagged

    # =========================================================================
    # STATUS MANAGEMENT
    # =========================================================================

    def _handle_success(self) -> None:
        with self._lock:
            self._status = ModuleStatus.ONLINE
            self._failure_count = 0

    def _handle_rate_limit(self, retry_after: float = RATE_LIMIT_COOLDOWN, error: Optional[str] = None) -> None:
        """Handle 429 Too Many Requests response."""
        with self._lock:
            self._cooldown_until = time.time() + retry_after
            self._status = ModuleStatus.RATE_LIMITED
            self._failure_count += 1
            if error:
                self._last_error = error

    def _handle_error(self, error: str) -> None:
        with self._lock:
            self._last_error = error
            self._failure_count += 1
            if self._failure_count >= MAX_FAILURES:
                self._status = ModuleStatus.OFFLINE
                self._cooldown_until = time.time() + OFFLINE_COOLDOWN

    @property
    def status(self) -> ModuleStatus:
        """Current status, accounting for cooldown expiry."""
        if self._cooldown_until > 0 and time.time() >= self._cooldown_until:
            with self._lock:
                self._status = ModuleStatus.UNKNOWN
                self._cooldown_until = 0.0
        return self._status

    @property
    def is_available(self) -> bool:
        """Check if the module can accept requests."""
        return self.status in (ModuleStatus.ONLINE, ModuleStatus.UNKNOWN)

    @property
    def id_field(self) -> str:
        """Record field holding this module's canonical id."""
        return get_module_kind(self.module).id_field

    def get_health_info(self) -> Dict[str, Any]:
        """Get health info for status display."""
        return {
            "id": self.id,
            "module": self.module,
            "name": self.name,
            "status": self.status.value,
            "is_available": self.is_available,
            "failure_count": self._failure_count,
            "last_error": self._last_error,
            "cooldown_remaining": max(0.0, self._cooldown_until - time.time()),
        }

    def reset(self) -> None:
        """Reset all error states."""
        with self._lock:
            self._status = ModuleStatus.UNKNOWN
            self._failure_count = 0
            self._cooldown_until = 0.0
            self._last_error = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.id} ({self.status.value})>"
