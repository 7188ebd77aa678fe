"""Resource manager sleeping after an apply as configured by the groups."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta
import logging

from kahoy.model import Resource
from kahoy.storage import GroupRepository

from .manager import ResourceManager

__all__ = [
    "WaitManager",
]

_LOGGER = logging.getLogger(__name__)


class WaitManager(ResourceManager):
    """Waits the longest wait duration of the applied groups after applying."""

    def __init__(
        self,
        manager: ResourceManager,
        group_repo: GroupRepository,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize WaitManager."""
        self._manager = manager
        self._group_repo = group_repo
        self._sleep = sleep

    async def apply(self, resources: list[Resource]) -> None:
        await self._manager.apply(resources)

        wait = timedelta(0)
        wait_group = ""
        for group_id in dict.fromkeys(r.group_id for r in resources):
            group = await self._group_repo.get_group(group_id)
            if group.wait > wait:
                wait = group.wait
                wait_group = group.id
        if wait <= timedelta(0):
            return
        _LOGGER.info("Waiting %s (group %s)", wait, wait_group)
        await self._sleep(wait.total_seconds())

    async def delete(self, resources: list[Resource]) -> None:
        await self._manager.delete(resources)
