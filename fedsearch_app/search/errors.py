"""
Search pipeline exceptions.

Hierarchy:
  FedSearchError
    ├── SearchCancelled      - invocation superseded by a newer one (not an error)
    ├── ModuleFetchError     - a single remote module call failed
    └── SearchPipelineError  - unrecoverable failure, surfaced to the caller
"""

from typing import Optional


class FedSearchError(Exception):
    """Base class for all search errors."""


class SearchCancelled(FedSearchError):
    """Raised when a search invocation has been superseded."""

    def __init__(self, invocation_id: Optional[str] = None):
        self.invocation_id = invocation_id
        message = "Search cancelled"
        if invocation_id:
            message = f"Search {invocation_id} cancelled"
        super().__init__(message)


class ModuleFetchError(FedSearchError):
    """Raised by a module connector when its remote call fails."""

    def __init__(self, module: str, message: str, status_code: Optional[int] = None,
                 retry_after: Optional[float] = None):
        self.module = module
        self.status_code = status_code
        self.retry_after = retry_after
        super().__init__(f"Module '{module}' fetch failed: {message}")


class SearchPipelineError(FedSearchError):
    """Raised when the pipeline fails outside the isolated module calls."""

    def __init__(self, message: str, stage: Optional[str] = None):
        self.stage = stage
        super().__init__(message)
