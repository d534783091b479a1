"""Registry client: session management on top of the request dispatcher."""

import asyncio
import base64
import datetime
import functools
import json
import logging
import typing
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from ddb_registry.config import config_provider
from ddb_registry.credentials import CredentialStore, credential_store_provider
from ddb_registry.events import EventBus, Listener
from ddb_registry.exceptions import (
    LOGGED_OUT,
    LoggedOutError,
    LoginError,
    NotLoggedInError,
    RequestError,
    ServerError,
    TransportError,
    UnauthorizedError,
)
from ddb_registry.organization import Organization
from ddb_registry.registry._http_client import RequestDispatcher, parse_json_body
from ddb_registry.registry._refresh import RefreshScheduler, refresh_scheduler_provider

logger = logging.getLogger(__name__)


def parse_jwt(token: str) -> dict[str, typing.Any]:
    """Decode the payload segment of a JWT.

    NOTE: the signature is not verified. This is not an authentication
    check; the registry enforces access, claims are only read to adapt
    client behaviour (e.g. showing admin features).

    Raises:
        ValueError: If the token has no payload segment or it is not
            base64url-encoded JSON.
    """
    parts = token.split(".")
    if len(parts) < 2:
        raise ValueError("Invalid JWT format: missing payload segment")

    # Decode payload (add base64 padding if needed)
    payload = parts[1]
    payload += "=" * ((4 - len(payload) % 4) % 4)
    return json.loads(base64.urlsafe_b64decode(payload))


def _issues_token(res: typing.Any) -> bool:
    return (
        isinstance(res, dict)
        and bool(res.get("token"))
        and res.get("expires") is not None
    )


def _failure(message: str, status_code: int | None) -> RequestError:
    if status_code == 401:
        return UnauthorizedError(message)
    return ServerError(message, status_code=status_code)


class StorageInfo(BaseModel):
    """Storage quota of the logged in user. ``total`` is None when unlimited."""

    total: int | None
    used: int
    free: int | None = None
    used_percentage: float | None = None


class Registry:
    """Client for a registry server.

    Credentials and refresh timers are keyed by the registry URL and shared
    between all Registry instances using the same credential store and
    scheduler (by default, the process-wide ones).

    Usage:
        async with Registry("https://hub.dronedb.app") as registry:
            await registry.login("user", "password")
            orgs = await registry.get_organizations()

    Events:
        - "login" (username): after a successful login
        - "logout": after logout
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        credentials: CredentialStore | None = None,
        scheduler: RefreshScheduler | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ):
        settings = config_provider.get()

        self.url = (url or settings.registry_url).rstrip("/")
        self.credentials = (
            credentials if credentials is not None else credential_store_provider.get()
        )
        self.scheduler = (
            scheduler if scheduler is not None else refresh_scheduler_provider.get()
        )
        self.refresh_interval = settings.refresh_interval
        self.events = EventBus()
        self._refresh_timer: asyncio.Task | None = None
        self._dispatcher = RequestDispatcher(
            self.url,
            self.credentials,
            timeout=timeout if timeout is not None else settings.timeout,
            retries=settings.retries,
            transport=transport,
        )

    @property
    def remote(self) -> str:
        """Registry host without scheme."""
        return self.url.removeprefix("https://").removeprefix("http://")

    @property
    def secure(self) -> bool:
        return self.url.startswith("https://")

    @property
    def tag_url(self) -> str:
        # Drop the https prefix if it's secure (it's the default)
        return self.remote if self.secure else self.url

    async def aclose(self) -> None:
        """Close the HTTP client and stop the refresh timer armed by this instance."""
        if (
            self._refresh_timer is not None
            and self.scheduler.pending(self.url) is self._refresh_timer
        ):
            self.scheduler.cancel(self.url)
        self._refresh_timer = None
        await self._dispatcher.aclose()

    async def __aenter__(self) -> "Registry":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def login(
        self, username: str, password: str, x_auth_token: str | None = None
    ) -> dict[str, typing.Any]:
        """Authenticate and start automatic token refresh.

        Returns:
            The authentication response (username, token, expires, ...).

        Raises:
            LoginError: If the registry could not be reached or answered
                with something other than JSON.
            RequestError: If the registry rejected the credentials.
        """
        body = {
            "username": username or None,
            "password": password or None,
            "token": x_auth_token or None,
        }
        try:
            response = await self._dispatcher.send(
                "/users/authenticate", "POST", body, authenticate=False
            )
            res = response.json()
        except (TransportError, ValueError) as e:
            raise LoginError(str(e)) from e

        if not isinstance(res, dict) or not res.get("token"):
            error = res.get("error") if isinstance(res, dict) else None
            raise _failure(
                error or f"Cannot login: {json.dumps(res)}", response.status_code
            )

        expires = res.get("expires")
        if expires is None:
            raise LoginError(f"missing expiration in {json.dumps(res)}")

        username = res.get("username", username)
        self.set_credentials(username, res["token"], expires)
        self.set_auto_refresh_token()
        logger.info(f"Logged in to {self.url} as {username}")
        self.emit("login", username)

        return res

    def logout(self) -> None:
        """Forget the session. Safe to call when already logged out."""
        self.clear_credentials()
        logger.info(f"Logged out from {self.url}")
        self.emit("logout")

    async def refresh_token(self) -> None:
        """Exchange the current token for a new one.

        Raises:
            LoggedOutError: If there is no valid session to refresh.
            RequestError: If the registry did not return a new token.
        """
        if not self.is_logged_in():
            raise LoggedOutError()

        username = self.credentials.get_username(self.url)
        response = await self._dispatcher.send("/users/authenticate/refresh", "POST")
        res = parse_json_body(response)

        if _issues_token(res):
            self.set_credentials(username, res["token"], res["expires"])
            logger.info(f"Refreshed token for {username} at {self.url}")
        else:
            error = res.get("error") if isinstance(res, dict) else None
            raise _failure(
                error or f"Cannot refresh token: {json.dumps(res)}",
                response.status_code,
            )

    def set_auto_refresh_token(self, seconds: float | None = None) -> None:
        """Refresh the token every ``seconds`` (default: settings.refresh_interval).

        Replaces any refresh timer pending for this registry URL. Failed
        refreshes are logged and retried after the same interval; the timer
        stops once a refresh finds the session logged out or the registry
        closed.
        """
        interval = seconds if seconds is not None else self.refresh_interval
        self._refresh_timer = self.scheduler.schedule(
            self.url, interval, functools.partial(self._auto_refresh, interval)
        )

    async def _auto_refresh(self, seconds: float) -> None:
        try:
            await self.refresh_token()
        except Exception as e:
            logger.error(f"Automatic token refresh for {self.url} failed: {e}")

            # Try again later, unless we're logged out or closed
            if str(e) == LOGGED_OUT or self._dispatcher.closed:
                return
        self.set_auto_refresh_token(seconds)

    async def change_pwd(
        self, old_password: str, new_password: str
    ) -> dict[str, typing.Any]:
        res = await self.post_request(
            "/users/changePwd",
            {"oldPassword": old_password, "newPassword": new_password},
        )
        if _issues_token(res):
            self.set_credentials(self.get_username(), res["token"], res["expires"])
            return res

        error = res.get("error") if isinstance(res, dict) else None
        status = res.get("status") if isinstance(res, dict) else None
        raise _failure(error or f"Cannot change password: {json.dumps(res)}", status)

    # -------------------------------------------------------------------------
    # Credentials and identity
    # -------------------------------------------------------------------------

    def set_credentials(
        self, username: str | None, token: str, expires: float
    ) -> None:
        self.credentials.set(self.url, username, token, expires)

    def clear_credentials(self) -> None:
        self.credentials.clear(self.url)

    def get_auth_token(self) -> str | None:
        """The bearer token, or None if absent or expired."""
        return self.credentials.get_token(self.url)

    def get_auth_token_expiration(self) -> datetime.datetime | None:
        expires = self.credentials.get_expiration(self.url)
        if expires is None:
            return None
        return datetime.datetime.fromtimestamp(expires, tz=datetime.timezone.utc)

    def is_logged_in(self) -> bool:
        """Whether a non-expired token is stored. Clears stale credentials if not."""
        logged_in = self.get_auth_token() is not None
        if not logged_in:
            self.clear_credentials()
        return logged_in

    def get_username(self) -> str | None:
        if self.is_logged_in():
            return self.credentials.get_username(self.url)
        return None

    def is_admin(self) -> bool:
        if not self.is_logged_in():
            return False

        token = self.get_auth_token()
        if not token:
            return False

        try:
            claims = parse_jwt(token)
        except ValueError as e:
            logger.debug(f"Cannot decode token payload: {e}")
            return False

        if not isinstance(claims, dict):
            return False
        return bool(claims.get("admin", False))

    def _require_login(self) -> None:
        if not self.is_logged_in():
            raise NotLoggedInError()

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def storage_info(self) -> StorageInfo:
        self._require_login()

        res = await self.get_request("/users/storage")
        total, used = res.get("total"), res["used"]
        if total is None:
            return StorageInfo(total=None, used=used)
        return StorageInfo(
            total=total,
            used=used,
            free=total - used,
            used_percentage=used / total if total else None,
        )

    async def users(self) -> list[dict[str, typing.Any]]:
        self._require_login()
        return await self.get_request("/users")

    async def user_roles(self) -> list[str]:
        self._require_login()
        return await self.get_request("/users/roles")

    async def add_user(
        self, username: str, password: str, roles: list[str] | None = None
    ) -> typing.Any:
        self._require_login()
        return await self.post_request(
            "/users",
            {
                "username": username,
                "password": password,
                "roles": json.dumps(roles or []),
            },
        )

    async def delete_user(self, username: str) -> typing.Any:
        self._require_login()
        return await self.delete_request(f"/users/{quote(username, safe='')}")

    # -------------------------------------------------------------------------
    # Organizations
    # -------------------------------------------------------------------------

    async def create_organization(
        self,
        slug: str,
        name: str | None = None,
        description: str | None = None,
        is_public: bool | None = None,
    ) -> dict[str, typing.Any]:
        self._require_login()
        return await self.post_request(
            "/orgs",
            {
                "slug": slug,
                "name": name,
                "description": description,
                "isPublic": is_public,
            },
        )

    async def update_organization(
        self,
        slug: str,
        name: str | None = None,
        description: str | None = None,
        is_public: bool | None = None,
    ) -> dict[str, typing.Any]:
        self._require_login()
        return await self.put_request(
            f"/orgs/{slug}",
            {
                "slug": slug,
                "name": name,
                "description": description,
                "isPublic": is_public,
            },
        )

    async def get_organizations(self) -> list[Organization]:
        res = await self.get_request("/orgs")
        return [Organization(self, org["slug"]) for org in res]

    async def delete_organization(self, slug: str) -> typing.Any:
        self._require_login()
        return await self.delete_request(f"/orgs/{slug}")

    def organization(self, slug: str) -> Organization:
        return Organization(self, slug)

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def make_request(
        self,
        endpoint: str,
        method: str = "GET",
        body: typing.Mapping[str, typing.Any] | None = None,
    ) -> typing.Any:
        return await self._dispatcher.request(endpoint, method, body)

    async def get_request(self, endpoint: str) -> typing.Any:
        return await self.make_request(endpoint, "GET")

    async def post_request(
        self, endpoint: str, body: typing.Mapping[str, typing.Any] | None = None
    ) -> typing.Any:
        return await self.make_request(endpoint, "POST", body)

    async def put_request(
        self, endpoint: str, body: typing.Mapping[str, typing.Any] | None = None
    ) -> typing.Any:
        return await self.make_request(endpoint, "PUT", body)

    async def delete_request(
        self, endpoint: str, body: typing.Mapping[str, typing.Any] | None = None
    ) -> typing.Any:
        return await self.make_request(endpoint, "DELETE", body)

    async def head_request(self, endpoint: str) -> typing.Any:
        return await self.make_request(endpoint, "HEAD")

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def add_event_listener(self, event: str, callback: Listener) -> None:
        self.events.on(event, callback)

    def remove_event_listener(self, event: str, callback: Listener) -> None:
        self.events.off(event, callback)

    def emit(self, event: str, *args: typing.Any) -> None:
        self.events.emit(event, *args)
