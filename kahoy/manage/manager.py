"""Interface shared by every layer of the resource manager chain."""

from abc import ABC, abstractmethod
import logging

from kahoy.model import Resource

__all__ = [
    "ResourceManager",
    "NoopManager",
]

_LOGGER = logging.getLogger(__name__)


class ResourceManager(ABC):
    """Makes resources exist in or be missing from the cluster."""

    @abstractmethod
    async def apply(self, resources: list[Resource]) -> None:
        """Ensure the resources exist with their current definition."""

    @abstractmethod
    async def delete(self, resources: list[Resource]) -> None:
        """Ensure the resources don't exist."""


class NoopManager(ResourceManager):
    """Manager that only logs what it was asked to do."""

    async def apply(self, resources: list[Resource]) -> None:
        _LOGGER.warning("apply ignored by noop manager (%d resources)", len(resources))

    async def delete(self, resources: list[Resource]) -> None:
        _LOGGER.warning("delete ignored by noop manager (%d resources)", len(resources))
