"""Credential storage for registry sessions.

Credentials (username, bearer token, expiry) are stored per registry URL in a
key/value storage backend under the keys:

- {url}_username
- {url}_jwt_token
- {url}_jwt_token_expires  (unix timestamp, seconds)

The store is shared by every Registry pointing at the same URL, so it is
created once per process (see credential_store_provider) and passed to
sessions, or injected explicitly in tests.
"""

import json
import logging
import threading
import time
import typing
from http.cookiejar import Cookie
from pathlib import Path
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel

from ddb_registry.config import config_provider

logger = logging.getLogger(__name__)

COOKIE_NAME = "jwtToken"


class Credentials(BaseModel):
    """A stored, non-expired session."""

    username: str | None
    token: str
    expires: float


# --- Storage backends ---


class KeyValueStorage(typing.Protocol):
    def get_item(self, key: str) -> typing.Any: ...

    def set_item(self, key: str, value: typing.Any) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage. Lost when the process exits."""

    def __init__(self) -> None:
        self._items: dict[str, typing.Any] = {}

    def get_item(self, key: str) -> typing.Any:
        return self._items.get(key)

    def set_item(self, key: str, value: typing.Any) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileStorage:
    """Durable storage backed by a JSON file readable only by its owner."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _load(self) -> dict[str, typing.Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.debug(f"Could not load {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: dict[str, typing.Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)

        # Make file readable only by owner (0600)
        self.path.chmod(0o600)

    def get_item(self, key: str) -> typing.Any:
        with self._lock:
            return self._load().get(key)

    def set_item(self, key: str, value: typing.Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)


# --- Credential store ---


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


class CredentialStore:
    """Per-registry credential storage with expiry tracking.

    Expiry is checked against ``clock()`` on every read; an expired token is
    never returned.

    When ``origin`` and ``cookies`` are given (a web application served from
    the same origin as the registry), the token is mirrored into a
    ``jwtToken`` cookie whenever credentials for that origin are set, and the
    cookie is dropped when they are cleared. For any other registry URL the
    cookie mirror is skipped.
    """

    def __init__(
        self,
        storage: KeyValueStorage | None = None,
        clock: typing.Callable[[], float] = time.time,
        origin: str | None = None,
        cookies: httpx.Cookies | None = None,
    ) -> None:
        self.storage = storage if storage is not None else MemoryStorage()
        self.clock = clock
        self.origin = origin.rstrip("/") if origin else None
        self.cookies = cookies

    @staticmethod
    def _key(url: str, name: str) -> str:
        return f"{url}_{name}"

    def set(
        self, url: str, username: str | None, token: str, expires: float
    ) -> None:
        """Store credentials for a registry URL."""
        self.storage.set_item(self._key(url, "username"), username)
        self.storage.set_item(self._key(url, "jwt_token"), token)
        self.storage.set_item(self._key(url, "jwt_token_expires"), expires)
        logger.debug(f"Stored credentials for {username} at {url}")

        if self._mirrors_cookie(url):
            self._set_cookie(url, token, expires)

    def get(self, url: str) -> Credentials | None:
        """Get the credentials for a registry URL, or None if absent or expired."""
        token = self.get_token(url)
        if token is None:
            return None
        return Credentials(
            username=self.get_username(url),
            token=token,
            expires=self.get_expiration(url),
        )

    def clear(self, url: str) -> None:
        """Remove all credentials stored for a registry URL."""
        self.storage.remove_item(self._key(url, "jwt_token"))
        self.storage.remove_item(self._key(url, "jwt_token_expires"))
        self.storage.remove_item(self._key(url, "username"))

        if self._mirrors_cookie(url):
            self._clear_cookie(url)

    def get_token(self, url: str) -> str | None:
        """Get the bearer token if it has not expired yet."""
        expires = self.get_expiration(url)
        if expires is None or expires <= self.clock():
            return None
        return self.storage.get_item(self._key(url, "jwt_token"))

    def get_expiration(self, url: str) -> float | None:
        """Get the stored expiry timestamp (even if it has passed)."""
        expires = self.storage.get_item(self._key(url, "jwt_token_expires"))
        if expires is None:
            return None
        try:
            return float(expires)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring malformed token expiry for {url}: {expires!r}")
            return None

    def get_username(self, url: str) -> str | None:
        """Get the stored username without checking expiry."""
        return self.storage.get_item(self._key(url, "username"))

    # --- Cookie mirror ---

    def _mirrors_cookie(self, url: str) -> bool:
        return (
            self.cookies is not None
            and self.origin is not None
            and self.origin == _origin(url)
        )

    def _set_cookie(self, url: str, token: str, expires: float) -> None:
        assert self.cookies is not None
        parts = urlsplit(url)
        cookie = Cookie(
            version=0,
            name=COOKIE_NAME,
            value=token,
            port=None,
            port_specified=False,
            domain=parts.hostname or "",
            domain_specified=bool(parts.hostname),
            domain_initial_dot=False,
            path="/",
            path_specified=True,
            secure=parts.scheme == "https",
            expires=int(expires),
            discard=False,
            comment=None,
            comment_url=None,
            rest={"SameSite": "Strict"},
            rfc2109=False,
        )
        self.cookies.jar.set_cookie(cookie)

    def _clear_cookie(self, url: str) -> None:
        assert self.cookies is not None
        self.cookies.delete(COOKIE_NAME, domain=urlsplit(url).hostname, path="/")


# --- Provider ---


class CredentialStoreProvider:
    """Provider for the process-wide CredentialStore.

    The default store is created on first use: durable (FileStorage) when
    DDB_CREDENTIALS_PATH is set, in memory otherwise.
    """

    def __init__(self) -> None:
        self._store: CredentialStore | None = None

    def get(self) -> CredentialStore:
        if self._store is None:
            path = config_provider.get().credentials_path
            storage = FileStorage(path) if path else MemoryStorage()
            self._store = CredentialStore(storage=storage)
        return self._store

    def set(self, store: CredentialStore) -> None:
        self._store = store

    def reset(self) -> None:
        self._store = None


credential_store_provider = CredentialStoreProvider()
