"""Resource manager bounding how long an apply or delete may take."""

import asyncio
from datetime import timedelta
import logging

from kahoy.exceptions import KahoyTimeoutException
from kahoy.model import Resource

from .manager import ResourceManager

__all__ = [
    "TimeoutManager",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = timedelta(minutes=5)


class TimeoutManager(ResourceManager):
    """Cancels the wrapped manager when the deadline is reached."""

    def __init__(
        self, manager: ResourceManager, timeout: timedelta = DEFAULT_TIMEOUT
    ) -> None:
        """Initialize TimeoutManager."""
        self._manager = manager
        self._timeout = timeout

    async def apply(self, resources: list[Resource]) -> None:
        try:
            async with asyncio.timeout(self._timeout.total_seconds()):
                await self._manager.apply(resources)
        except TimeoutError as err:
            _LOGGER.error("Apply timed out after %s", self._timeout)
            raise KahoyTimeoutException(f"apply timed out after {self._timeout}") from err

    async def delete(self, resources: list[Resource]) -> None:
        try:
            async with asyncio.timeout(self._timeout.total_seconds()):
                await self._manager.delete(resources)
        except TimeoutError as err:
            _LOGGER.error("Delete timed out after %s", self._timeout)
            raise KahoyTimeoutException(f"delete timed out after {self._timeout}") from err
