"""Organization resource proxy."""

import typing

from ddb_registry.dataset import Dataset

if typing.TYPE_CHECKING:
    from ddb_registry.registry import Registry


class Organization:
    def __init__(self, registry: "Registry", org: str):
        self.registry = registry
        self.org = org

    def __repr__(self) -> str:
        return f"Organization({self.registry.url!r}, {self.org!r})"

    async def datasets(self) -> list[dict[str, typing.Any]]:
        return await self.registry.get_request(f"/orgs/{self.org}/ds")

    async def info(self) -> dict[str, typing.Any]:
        return await self.registry.get_request(f"/orgs/{self.org}/")

    def dataset(self, ds: str) -> Dataset:
        return Dataset(self.registry, self.org, ds)

    async def create_dataset(
        self, slug: str, name: str | None = None, is_public: bool = False
    ) -> dict[str, typing.Any]:
        return await self.registry.post_request(
            f"/orgs/{self.org}/ds",
            {"slug": slug, "name": name, "isPublic": is_public},
        )
