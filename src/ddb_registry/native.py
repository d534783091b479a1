"""Adapter for the native core library.

The native bindings expose callback-style functions whose last argument is
``callback(error, result)``. NativeAdapter turns each of them into a
coroutine. The only logic of its own is path normalization (resolve_paths).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import typing

from ddb_registry.exceptions import NativeError

logger = logging.getLogger(__name__)

Paths = str | typing.Sequence[str]


def resolve_paths(root: str, paths: Paths) -> list[str]:
    """Express every path relative to ``root`` as a path inside it.

    Absolute paths and paths already inside ``root`` are kept as given;
    anything else is joined onto ``root``.
    """
    if isinstance(paths, str):
        paths = [paths]

    resolved = []
    for p in paths:
        if os.path.isabs(p):
            resolved.append(p)
            continue

        relative = os.path.relpath(p, root)
        inside = relative != "." and not relative.startswith("..")
        if inside and not os.path.isabs(relative):
            resolved.append(p)
        else:
            resolved.append(os.path.join(root, p))
    return resolved


def _as_list(paths: Paths) -> list[str]:
    return [paths] if isinstance(paths, str) else list(paths)


async def call_native(
    func: typing.Callable[..., typing.Any], *args: typing.Any
) -> typing.Any:
    """Call a callback-style native function and await its result.

    The callback may be invoked from any thread.

    Raises:
        NativeError: If the callback reports an error.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def _resolve(error: typing.Any, result: typing.Any = None) -> None:
        if future.done():
            return
        if error:
            future.set_exception(
                error if isinstance(error, BaseException) else NativeError(str(error))
            )
        else:
            future.set_result(result)

    def callback(error: typing.Any = None, result: typing.Any = None) -> None:
        loop.call_soon_threadsafe(_resolve, error, result)

    logger.debug(f"Calling native {getattr(func, '__name__', func)}")
    func(*args, callback)
    return await future


class _MetaAdapter:
    def __init__(self, bindings: typing.Any):
        self._n = bindings

    async def add(self, ddb_path: str, path: str | None, key: str, data: typing.Any):
        return await call_native(
            self._n.meta_add, ddb_path, path or "", key, json.dumps(data)
        )

    async def set(self, ddb_path: str, path: str | None, key: str, data: typing.Any):
        return await call_native(
            self._n.meta_set, ddb_path, path or "", key, json.dumps(data)
        )

    async def remove(self, ddb_path: str, id: str):
        return await call_native(self._n.meta_remove, ddb_path, id)

    async def get(self, ddb_path: str, path: str | None, key: str):
        return await call_native(self._n.meta_get, ddb_path, path or "", key)

    async def unset(self, ddb_path: str, path: str | None, key: str):
        return await call_native(self._n.meta_unset, ddb_path, path or "", key)

    async def list(self, ddb_path: str, path: str | None = None):
        return await call_native(self._n.meta_list, ddb_path, path or "")


class NativeAdapter:
    """Coroutine interface to the native core bindings.

    Usage:
        ddb = NativeAdapter(bindings)
        entries = await ddb.add("/data/project", ["images/1.jpg"])
    """

    def __init__(self, bindings: typing.Any):
        self._n = bindings
        self.meta = _MetaAdapter(bindings)

    def get_version(self) -> str:
        return self._n.get_version()

    def get_default_registry(self) -> str:
        return self._n.get_default_registry()

    async def thumbs_get_from_user_cache(
        self, image_path: str, options: dict | None = None
    ):
        return await call_native(
            self._n.thumbs_get_from_user_cache, image_path, options or {}
        )

    async def tile_get_from_user_cache(
        self, geotiff_path: str, tz: int, tx: int, ty: int, options: dict | None = None
    ):
        return await call_native(
            self._n.tile_get_from_user_cache, geotiff_path, tz, tx, ty, options or {}
        )

    async def info(self, paths: Paths, options: dict | None = None):
        return await call_native(self._n.info, _as_list(paths), options or {})

    async def init(self, directory: str):
        return await call_native(self._n.init, directory)

    async def add(self, ddb_path: str, paths: Paths, options: dict | None = None):
        return await call_native(
            self._n.add, ddb_path, resolve_paths(ddb_path, paths), options or {}
        )

    async def list(
        self, ddb_path: str, paths: Paths = ".", options: dict | None = None
    ):
        return await call_native(
            self._n.list, ddb_path, resolve_paths(ddb_path, paths), options or {}
        )

    async def search(self, ddb_path: str, query: str = "."):
        return await call_native(self._n.search, ddb_path, query)

    async def get(self, ddb_path: str, path: str):
        return await call_native(self._n.get, ddb_path, path)

    async def remove(self, ddb_path: str, paths: Paths, options: dict | None = None):
        await call_native(
            self._n.remove, ddb_path, resolve_paths(ddb_path, paths), options or {}
        )
        return True

    async def move(self, ddb_path: str, source: str, dest: str):
        await call_native(self._n.move, ddb_path, source, dest)
        return True

    async def share(
        self,
        paths: Paths,
        tag: str,
        options: dict | None = None,
        progress: typing.Callable[..., bool] | None = None,
    ) -> str:
        return await call_native(
            self._n.share,
            _as_list(paths),
            tag,
            options or {},
            progress or (lambda *args: True),
        )

    async def login(self, username: str, password: str, server: str = "") -> str:
        return await call_native(self._n.login, username, password, server)

    async def chattr(self, ddb_path: str, attrs: dict | None = None):
        return await call_native(self._n.chattr, ddb_path, attrs or {})
