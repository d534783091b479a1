"""Dataset resource proxy and URL builders for downloads, thumbnails and tiles."""

from __future__ import annotations

import json
import typing
from urllib.parse import quote, urlencode

from ddb_registry.exceptions import InvalidArgumentError, NotFoundError, RegistryError

if typing.TYPE_CHECKING:
    from ddb_registry.registry import Registry


def _encode_component(value: str) -> str:
    return quote(value, safe="!~*'()")


class Dataset:
    """A dataset of an organization.

    URL builders (download_url, thumb_url, tile_url) return paths relative to
    the registry URL; every other method performs a request.
    """

    def __init__(self, registry: "Registry", org: str, ds: str):
        self.registry = registry
        self.org = org
        self.ds = ds

    def __repr__(self) -> str:
        return f"Dataset({self.registry.url!r}, {self.org!r}, {self.ds!r})"

    def remote_uri(self, path: str | None = None) -> str:
        """The ``ddb://`` URI of the dataset (or of a path inside it)."""
        proto = "ddb" if self.registry.secure else "ddb+unsafe"
        p = f"/{path}" if path and path != "." else ""
        return f"{proto}://{self.registry.remote}/{self.org}/{self.ds}{p}"

    @property
    def base_api(self) -> str:
        return f"/orgs/{self.org}/ds/{self.ds}"

    # --- URL builders ---

    def download_url(
        self, paths: str | list[str] | None = None, inline: bool = False
    ) -> str:
        if isinstance(paths, str):
            paths = [paths]

        url = f"{self.base_api}/download"
        query: dict[str, str] = {}

        if paths:
            if len(paths) > 1:
                query["path"] = ",".join(paths)
            else:
                url += f"/{paths[0]}"

        if inline:
            query["inline"] = "1"
        if query:
            url += f"?{urlencode(query)}"

        return url

    def thumb_url(self, path: str, size: int | None = None) -> str:
        url = f"{self.base_api}/thumb?path={_encode_component(path)}"
        if size:
            url += f"&size={size}"
        return url

    def tile_url(
        self, path: str, tz: int, tx: int, ty: int, retina: bool = False
    ) -> str:
        suffix = "@2x" if retina else ""
        return (
            f"{self.base_api}/tiles/{tz}/{tx}/{ty}{suffix}.png"
            f"?path={_encode_component(path)}"
        )

    # --- Requests ---

    async def download(self, paths: str | list[str]) -> typing.Any:
        return await self.registry.post_request(
            f"{self.base_api}/download", {"path": paths}
        )

    async def get_file_contents(self, path: str) -> typing.Any:
        return await self.registry.get_request(self.download_url(path, inline=True))

    async def info(self) -> typing.Any:
        return await self.registry.get_request(self.base_api)

    async def list(self, path: str | list[str] | None = None) -> list[dict]:
        return await self.registry.post_request(f"{self.base_api}/list", {"path": path})

    async def list_one(self, path: str) -> dict[str, typing.Any]:
        entries = await self.list(path)
        if len(entries) == 1:
            return entries[0]
        if not entries:
            raise NotFoundError(
                f"Cannot find: {path}. It might have been renamed or moved."
            )
        raise RegistryError("list_one returned more than 1 element")

    async def search(self, query: str) -> list[dict]:
        return await self.registry.post_request(
            f"{self.base_api}/search", {"query": query}
        )

    async def delete(self) -> typing.Any:
        return await self.registry.delete_request(self.base_api)

    async def delete_obj(self, path: str) -> typing.Any:
        return await self.registry.delete_request(
            f"{self.base_api}/obj", {"path": path}
        )

    async def move_obj(self, source: str, dest: str) -> typing.Any:
        return await self.registry.put_request(
            f"{self.base_api}/obj", {"source": source, "dest": dest}
        )

    async def write_obj(self, path: str, content: str | bytes) -> typing.Any:
        if isinstance(content, str):
            content = content.encode()
        return await self.registry.post_request(
            f"{self.base_api}/obj", {"path": path, "file": content}
        )

    async def create_folder(self, path: str) -> typing.Any:
        return await self.registry.post_request(f"{self.base_api}/obj", {"path": path})

    async def rename(self, slug: str) -> typing.Any:
        if not isinstance(slug, str):
            raise InvalidArgumentError(f"Invalid slug {slug}")
        return await self.registry.post_request(
            f"{self.base_api}/rename", {"slug": slug}
        )

    async def meta_set(self, key: str, data: typing.Any, path: str = "") -> typing.Any:
        if not key:
            raise InvalidArgumentError(f"Invalid key {key}")
        if data is None:
            raise InvalidArgumentError("Invalid data")
        if not isinstance(data, str):
            data = json.dumps(data)
        return await self.registry.post_request(
            f"{self.base_api}/meta/set", {"key": key, "data": data, "path": path}
        )

    async def set_public(self, flag: bool) -> typing.Any:
        return await self.registry.post_request(
            f"{self.base_api}/chattr", {"attrs": json.dumps({"public": flag})}
        )
