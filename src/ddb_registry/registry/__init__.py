"""Registry client module.

The main classes are:

- Registry: Session manager and entry point for all registry calls
- RequestDispatcher: Sends requests and classifies responses
- RefreshScheduler: One automatic token refresh timer per registry URL
- refresh_scheduler_provider: Provider for the process-wide scheduler
"""

from ddb_registry.registry._http_client import (
    RequestDispatcher,
    build_multipart,
    classify_response,
    parse_json_body,
)
from ddb_registry.registry._refresh import (
    RefreshScheduler,
    refresh_scheduler_provider,
)
from ddb_registry.registry._session import Registry, StorageInfo, parse_jwt

__all__ = [
    "RefreshScheduler",
    "Registry",
    "RequestDispatcher",
    "StorageInfo",
    "build_multipart",
    "classify_response",
    "parse_json_body",
    "parse_jwt",
    "refresh_scheduler_provider",
]
