import base64
import json
import os
import typing

import httpx
import pytest

from ddb_registry.config import config_provider
from ddb_registry.credentials import CredentialStore, credential_store_provider
from ddb_registry.registry import RefreshScheduler, Registry, refresh_scheduler_provider
from ddb_registry.testing import ManualClock

REGISTRY_URL = "https://hub.example.com"


# Register custom markers
def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (may require external services)",
    )


@pytest.fixture(scope="function", autouse=True)
def cleared_ddb_env_vars(
    monkeypatch: pytest.MonkeyPatch,
) -> typing.Generator[None, None, None]:
    """Clear DDB_* environment variables and process-wide state for the test."""
    for var in [var for var in os.environ if var.startswith("DDB_")]:
        monkeypatch.delenv(var)
    config_provider.reset()
    credential_store_provider.reset()
    refresh_scheduler_provider.reset()
    yield
    config_provider.reset()
    credential_store_provider.reset()


class FakeRegistryServer:
    """Records requests and answers them from a route table.

    Routes map (method, path) to a function building a fresh httpx.Response
    for each request. Unknown routes answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[
            tuple[str, str], typing.Callable[[httpx.Request], httpx.Response]
        ] = {}
        self.requests: list[httpx.Request] = []

    def route(self, method: str, path: str, status_code: int = 200, **kwargs):
        self.routes[(method, path)] = lambda request: httpx.Response(
            status_code, **kwargs
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, text="no route")
        return handler(request)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and r.url.path == path
        ]


def _segment(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


def make_jwt(claims: dict) -> str:
    return f"{_segment({'alg': 'HS256', 'typ': 'JWT'})}.{_segment(claims)}.signature"


@pytest.fixture
def jwt() -> typing.Callable[[dict], str]:
    return make_jwt


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def credentials(clock: ManualClock) -> CredentialStore:
    return CredentialStore(clock=clock.time)


@pytest.fixture
def scheduler(clock: ManualClock) -> RefreshScheduler:
    return RefreshScheduler(sleep=clock.sleep)


@pytest.fixture
def server() -> FakeRegistryServer:
    return FakeRegistryServer()


@pytest.fixture
def registry_factory(
    server: FakeRegistryServer,
    credentials: CredentialStore,
    scheduler: RefreshScheduler,
) -> typing.Callable[..., Registry]:
    def factory(url: str = REGISTRY_URL) -> Registry:
        return Registry(
            url,
            credentials=credentials,
            scheduler=scheduler,
            transport=httpx.MockTransport(server.handle),
        )

    return factory


@pytest.fixture
def registry(registry_factory) -> Registry:
    return registry_factory()


@pytest.fixture
def logged_in(registry: Registry, clock: ManualClock, jwt) -> Registry:
    """A registry with a valid session for 'alice' (no refresh timer armed)."""
    registry.set_credentials("alice", jwt({"admin": False}), clock.now + 7200)
    return registry
