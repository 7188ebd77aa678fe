"""Library for loading resources from a byte stream such as stdin."""

import asyncio
import contextlib
import logging
import threading
from typing import IO

from kahoy.codec import decode_objects
from kahoy.config import AppConfig
from kahoy.exceptions import (
    FileSystemException,
    KahoyTimeoutException,
    NotValidException,
)
from kahoy.model import ROOT_GROUP_ID, Resource, ResourceAndGroupFactory

from .memory import InMemoryRepository

__all__ = [
    "StreamLoader",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_READ_TIMEOUT = 10.0
STREAM_MANIFEST_PATH = "stdin"


def _resolve(
    future: "asyncio.Future[bytes | str]",
    data: bytes | str,
    err: Exception | None,
) -> None:
    if future.done():
        return
    if err is not None:
        future.set_exception(err)
    else:
        future.set_result(data)


class StreamLoader:
    """Loads all the resources of a stream into a single group.

    The read happens on a daemon thread that is abandoned once the timeout is
    reached, so a stalled reader never blocks the interpreter from exiting.
    """

    def __init__(
        self,
        reader: IO[bytes] | IO[str],
        timeout: float = DEFAULT_READ_TIMEOUT,
        app_config: AppConfig | None = None,
        factory: ResourceAndGroupFactory | None = None,
        root_group_id: str = ROOT_GROUP_ID,
    ) -> None:
        """Initialize StreamLoader."""
        self._reader = reader
        self._timeout = timeout
        self._app_config = app_config or AppConfig()
        self._factory = factory or ResourceAndGroupFactory()
        self._root_group_id = root_group_id

    def _read(
        self,
        loop: asyncio.AbstractEventLoop,
        future: "asyncio.Future[bytes | str]",
    ) -> None:
        data: bytes | str = b""
        error: Exception | None = None
        try:
            data = self._reader.read()
        except OSError as err:
            error = FileSystemException(
                f"could not read manifests from {STREAM_MANIFEST_PATH}: {err}"
            )
        except Exception as err:  # pylint: disable=broad-except
            error = err
        # The loop is already closed when the read was abandoned.
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(_resolve, future, data, error)

    async def load(self) -> InMemoryRepository:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[bytes | str] = loop.create_future()
        threading.Thread(
            target=self._read,
            args=(loop, future),
            name="kahoy-stream-reader",
            daemon=True,
        ).start()
        try:
            data = await asyncio.wait_for(future, self._timeout)
        except asyncio.TimeoutError as err:
            raise KahoyTimeoutException(
                f"timeout reading manifests from {STREAM_MANIFEST_PATH} after {self._timeout}s"
            ) from err

        resources: dict[str, Resource] = {}
        for obj in decode_objects(data):
            resource = self._factory.new_resource(
                obj, self._root_group_id, STREAM_MANIFEST_PATH
            )
            if resource.id in resources:
                raise NotValidException(
                    f"resource collision with {resource.id} in {STREAM_MANIFEST_PATH}"
                )
            resources[resource.id] = resource

        group = self._factory.new_group(
            self._root_group_id, "", self._app_config.group(self._root_group_id)
        )
        _LOGGER.info("Loaded %d resources from %s", len(resources), STREAM_MANIFEST_PATH)
        return InMemoryRepository(resources, {group.id: group})
