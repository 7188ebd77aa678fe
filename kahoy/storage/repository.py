"""Interfaces for the repositories holding resources, groups and run states."""

from abc import ABC, abstractmethod
import logging

from kahoy.model import Group, Resource, State

__all__ = [
    "ResourceRepository",
    "GroupRepository",
    "StateRepository",
]

_LOGGER = logging.getLogger(__name__)


class ResourceRepository(ABC):
    """Keyed access to loaded resources."""

    @abstractmethod
    async def get_resource(self, resource_id: str) -> Resource:
        """Return the resource or raise `MissingException`."""

    @abstractmethod
    async def list_resources(self) -> list[Resource]:
        """Return a snapshot of all the resources in no specific order."""


class GroupRepository(ABC):
    """Keyed access to loaded groups."""

    @abstractmethod
    async def get_group(self, group_id: str) -> Group:
        """Return the group or raise `MissingException`."""

    @abstractmethod
    async def list_groups(self) -> list[Group]:
        """Return a snapshot of all the groups in no specific order."""


class StateRepository(ABC):
    """Destination of the state recorded at the end of a run."""

    @abstractmethod
    async def store_state(self, state: State) -> None:
        """Persist the state."""
