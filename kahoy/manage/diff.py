"""Resource manager printing the changes an apply or delete would make.

Applies are diffed by the api server with `kubectl diff`. Kubectl can't diff
a deletion, so the current server version of every resource being deleted
is fetched and diffed against an empty file instead.
"""

import logging
import pathlib
import tempfile
from typing import TextIO

from kahoy.codec import decode_objects, encode_objects
from kahoy.command import Command, run
from kahoy.exceptions import CommandException, FileSystemException
from kahoy.kubectl import KubectlOptions
from kahoy.model import K8sObject, Resource

from .manager import ResourceManager

__all__ = [
    "DiffManager",
]

_LOGGER = logging.getLogger(__name__)

DIFF_CMD = "diff"
TEMP_DIR_PREFIX = "KAHOY-"


def diff_file_name(obj: K8sObject) -> str:
    """Return the name of the file holding the server version of an object."""
    return ".".join([obj.group, obj.version, obj.kind, obj.namespace, obj.name])


def _log_stderr(err: CommandException) -> None:
    for line in err.stderr.splitlines():
        if line:
            _LOGGER.error(line)


class DiffManager(ResourceManager):
    """Writes the diff of the resources to `out` without changing anything."""

    def __init__(self, out: TextIO, options: KubectlOptions | None = None) -> None:
        """Initialize DiffManager."""
        self._out = out
        self._options = options or KubectlOptions()

    def _write(self, content: str) -> None:
        if content:
            self._out.write(content)
            self._out.flush()

    async def apply(self, resources: list[Resource]) -> None:
        if not resources:
            return
        # Exit code 1 means there are differences.
        cmd = self._options.command(
            "diff", *self._options.server_side_args(), "-f", "-", retcodes=[1]
        )
        try:
            out = await run(cmd, encode_objects(r.k8s_object for r in resources))
        except CommandException as err:
            _log_stderr(err)
            raise
        self._write(out)

    async def server_objects(self, resources: list[Resource]) -> list[K8sObject]:
        """Return the current server version of the resources that still exist."""
        cmd = self._options.command(
            "get", "--ignore-not-found=true", "-o", "yaml", "-f", "-"
        )
        try:
            out = await run(cmd, encode_objects(r.k8s_object for r in resources))
        except CommandException as err:
            _log_stderr(err)
            raise
        return decode_objects(out)

    async def delete(self, resources: list[Resource]) -> None:
        if not resources:
            return
        objs = await self.server_objects(resources)
        try:
            with tempfile.TemporaryDirectory(prefix=TEMP_DIR_PREFIX) as tmpdir:
                for obj in objs:
                    path = pathlib.Path(tmpdir) / diff_file_name(obj)
                    path.write_bytes(encode_objects([obj]))
                    cmd = Command([DIFF_CMD, "-u", "-N", str(path), "-"], retcodes=[1])
                    try:
                        out = await run(cmd, b"")
                    except CommandException as err:
                        _log_stderr(err)
                        raise
                    self._write(out)
        except OSError as err:
            raise FileSystemException(f"Unable to write delete diff files: {err}") from err
