"""
================================================================================
FedSearch v1.0 - Module Registry
================================================================================
Central registry for remote search module connectors.

Builds the {module: fetch} mapping the search coordinator fans out to:
  - SEARCH_API_BASE_URL set -> one HttpModuleConnector per enabled module,
    plus the "globalsearch" cross-module call
  - SEARCH_MOCK_DATA set    -> StaticModuleConnectors over a JSON file
  - neither                 -> no remote modules (local search only)
================================================================================
"""

import atexit
import json
import logging
import threading
from typing import Any, Dict, List, Optional

from fedsearch_app.search.orchestrator import GLOBAL_MODULE

from .base import BaseModuleConnector, ModuleStatus
from .http_connector import HttpModuleConnector
from .static import StaticModuleConnector

logger = logging.getLogger(__name__)

# Mock data keys that feed a module other than their own name
MOCK_DATA_MODULES = {'chats': GLOBAL_MODULE}


class ModuleRegistry:
    """
    Holds the connectors of one deployment.

    Usage:
        registry = ModuleRegistry()
        registry.register(HttpModuleConnector("users", "https://api.example.com"))
        apis = registry.module_apis()   # {module: connector}
    """

    def __init__(self, connectors: Optional[List[BaseModuleConnector]] = None):
        self._connectors: Dict[str, BaseModuleConnector] = {}
        for connector in connectors or []:
            self.register(connector)

    def register(self, connector: BaseModuleConnector) -> None:
        if connector.module in self._connectors:
            logger.warning(f"Replacing connector for module '{connector.module}'")
        self._connectors[connector.module] = connector

    def get(self, module: str) -> Optional[BaseModuleConnector]:
        return self._connectors.get(module)

    @property
    def modules(self) -> List[str]:
        return list(self._connectors)

    def module_apis(self) -> Dict[str, BaseModuleConnector]:
        return dict(self._connectors)

    def get_health(self) -> List[Dict[str, Any]]:
        return [c.get_health_info() for c in self._connectors.values()]

    def get_health_report(self) -> Dict[str, Any]:
        """Health of every module plus availability totals."""
        available = self.available()
        return {
            "modules": self.get_health(),
            "available": available,
            "available_count": len(available),
            "total_count": len(self._connectors),
        }

    def available(self) -> List[str]:
        """Modules not cooling down after rate limits or repeated failures."""
        return [m for m, c in self._connectors.items() if c.is_available]

    def reset(self, module: Optional[str] = None) -> bool:
        """Reset one module's error state (all modules when None)."""
        if module is None:
            for connector in self._connectors.values():
                connector.reset()
            return True
        connector = self._connectors.get(module)
        if connector is None:
            return False
        connector.reset()
        return True

    def close(self) -> None:
        """Release every connector's network resources."""
        for connector in self._connectors.values():
            connector.close()

    def __len__(self) -> int:
        return len(self._connectors)

    # =========================================================================
    # CONSTRUCTION FROM SETTINGS
    # =========================================================================

    @classmethod
    def from_http(cls, base_url: str, modules: List[str], timeout: float = 5.0) -> 'ModuleRegistry':
        registry = cls()
        for module in [GLOBAL_MODULE] + [m for m in modules if m != GLOBAL_MODULE]:
            registry.register(HttpModuleConnector(module, base_url, timeout=timeout))
        logger.info(f"🌐 Registered {len(registry)} HTTP modules at {base_url}")
        return registry

    @classmethod
    def from_mock_data(cls, data: Dict[str, Any], latency: float = 0.0) -> 'ModuleRegistry':
        registry = cls()
        for key, records in data.items():
            if not isinstance(records, list):
                continue
            module = MOCK_DATA_MODULES.get(key, key)
            registry.register(StaticModuleConnector(module, records, latency=latency))
        logger.info(f"🧪 Registered {len(registry)} mock modules: {', '.join(registry.modules)}")
        return registry

    @classmethod
    def from_mock_file(cls, path: str, latency: float = 0.0) -> 'ModuleRegistry':
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Mock data file {path} must hold a JSON object")
        return cls.from_mock_data(data, latency=latency)

    @classmethod
    def from_settings(cls, settings) -> 'ModuleRegistry':
        if settings.api_base_url:
            return cls.from_http(settings.api_base_url, settings.enabled_modules, settings.api_timeout)
        if settings.mock_data_path:
            return cls.from_mock_file(settings.mock_data_path, settings.mock_latency)
        logger.info("ℹ️ No remote modules configured, local search only")
        return cls()


# =============================================================================
# SINGLETON
# =============================================================================

_registry: Optional[ModuleRegistry] = None
_registry_lock = threading.Lock()
_shutdown_hook_registered = False


def get_module_registry(settings=None) -> ModuleRegistry:
    """Get or create the process-wide registry."""
    global _registry, _shutdown_hook_registered
    with _registry_lock:
        if _registry is None:
            if settings is None:
                from fedsearch_app.config import SearchSettings
                settings = SearchSettings.from_env()
            _registry = ModuleRegistry.from_settings(settings)
            if not _shutdown_hook_registered:
                atexit.register(_close_module_registry)
                _shutdown_hook_registered = True
        return _registry


def _close_module_registry() -> None:
    registry = _registry
    if registry is not None:
        registry.close()


def reset_module_registry() -> None:
    """Close and forget the process-wide registry (rebuilt on next access)."""
    global _registry
    with _registry_lock:
        registry, _registry = _registry, None
    if registry is not None:
        registry.close()


__all__ = [
    'BaseModuleConnector', 'HttpModuleConnector', 'ModuleRegistry', 'ModuleStatus',
    'StaticModuleConnector', 'get_module_registry', 'reset_module_registry',
]
