"""Client library for DroneDB registries.

Usage:
    from ddb_registry import Registry

    async with Registry("https://hub.dronedb.app") as registry:
        await registry.login("user", "password")
        for org in await registry.get_organizations():
            print(org.org, await org.datasets())
"""

from ddb_registry.config import (
    DEFAULT_REGISTRY,
    DEFAULT_REGISTRY_URL,
    RegistrySettings,
    config_provider,
    get_settings,
)
from ddb_registry.credentials import (
    CredentialStore,
    Credentials,
    FileStorage,
    MemoryStorage,
    credential_store_provider,
)
from ddb_registry.dataset import Dataset
from ddb_registry.events import EventBus
from ddb_registry.exceptions import (
    InvalidArgumentError,
    LoggedOutError,
    LoginError,
    NativeError,
    NotFoundError,
    NotLoggedInError,
    PreconditionError,
    RegistryError,
    RequestError,
    ServerError,
    TransportError,
    UnauthorizedError,
)
from ddb_registry.native import NativeAdapter, resolve_paths
from ddb_registry.organization import Organization
from ddb_registry.registry import (
    RefreshScheduler,
    Registry,
    RequestDispatcher,
    StorageInfo,
    refresh_scheduler_provider,
)

__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_REGISTRY_URL",
    "CredentialStore",
    "Credentials",
    "Dataset",
    "EventBus",
    "FileStorage",
    "InvalidArgumentError",
    "LoggedOutError",
    "LoginError",
    "MemoryStorage",
    "NativeAdapter",
    "NativeError",
    "NotFoundError",
    "NotLoggedInError",
    "Organization",
    "PreconditionError",
    "RefreshScheduler",
    "Registry",
    "RegistryError",
    "RegistrySettings",
    "RequestDispatcher",
    "RequestError",
    "ServerError",
    "StorageInfo",
    "TransportError",
    "UnauthorizedError",
    "config_provider",
    "credential_store_provider",
    "get_settings",
    "refresh_scheduler_provider",
    "resolve_paths",
]
