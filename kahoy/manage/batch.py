"""Resource manager applying resources in batches ordered by group priority."""

from collections import defaultdict
import logging

from kahoy.model import Resource
from kahoy.storage import GroupRepository

from .manager import ResourceManager

__all__ = [
    "PriorityManager",
]

_LOGGER = logging.getLogger(__name__)


class PriorityManager(ResourceManager):
    """Groups resources in batches by the priority of their group.

    Batches are applied from the lowest priority to the highest and a batch
    only starts once the previous one succeeded. Resources keep their
    relative order inside a batch. Deletes are passed as a single batch.
    """

    def __init__(
        self,
        manager: ResourceManager,
        group_repo: GroupRepository,
        disable_priorities: bool = False,
    ) -> None:
        """Initialize PriorityManager."""
        self._manager = manager
        self._group_repo = group_repo
        self._disable_priorities = disable_priorities

    async def batches(self, resources: list[Resource]) -> list[tuple[int, list[Resource]]]:
        """Return the (priority, resources) batches in the order they are applied."""
        by_priority: dict[int, list[Resource]] = defaultdict(list)
        for resource in resources:
            group = await self._group_repo.get_group(resource.group_id)
            by_priority[group.priority].append(resource)
        return sorted(by_priority.items(), key=lambda item: item[0])

    async def apply(self, resources: list[Resource]) -> None:
        if self._disable_priorities or not resources:
            await self._manager.apply(resources)
            return
        batches = await self.batches(resources)
        for i, (priority, batch) in enumerate(batches, start=1):
            _LOGGER.info(
                "Applying batch %d of %d (priority %d, %d resources)",
                i,
                len(batches),
                priority,
                len(batch),
            )
            await self._manager.apply(batch)

    async def delete(self, resources: list[Resource]) -> None:
        await self._manager.delete(resources)
