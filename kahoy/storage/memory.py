"""Module for in memory resource and group repositories."""

import logging

from kahoy.exceptions import MissingException
from kahoy.model import Group, Resource

from .repository import GroupRepository, ResourceRepository

__all__ = [
    "InMemoryRepository",
]

_LOGGER = logging.getLogger(__name__)


class InMemoryRepository(ResourceRepository, GroupRepository):
    """Resources and groups held in dicts keyed by their id.

    Every loader stores what it loaded here. The contents are treated as
    immutable once the repository is built.
    """

    def __init__(
        self,
        resources: dict[str, Resource] | None = None,
        groups: dict[str, Group] | None = None,
    ) -> None:
        """Initialize InMemoryRepository."""
        self._resources: dict[str, Resource] = dict(resources or {})
        self._groups: dict[str, Group] = dict(groups or {})

    async def get_resource(self, resource_id: str) -> Resource:
        if (resource := self._resources.get(resource_id)) is None:
            raise MissingException(f"resource {resource_id!r} is missing")
        return resource

    async def list_resources(self) -> list[Resource]:
        return list(self._resources.values())

    async def get_group(self, group_id: str) -> Group:
        if (group := self._groups.get(group_id)) is None:
            raise MissingException(f"group {group_id!r} is missing")
        return group

    async def list_groups(self) -> list[Group]:
        return list(self._groups.values())
