"""Resource manager applying and deleting resources with kubectl."""

import logging

from kahoy.codec import encode_objects
from kahoy.command import stream
from kahoy.exceptions import CommandException
from kahoy.kubectl import KubectlOptions
from kahoy.model import Resource

from .manager import ResourceManager

__all__ = [
    "KubectlManager",
]

_LOGGER = logging.getLogger(__name__)


class KubectlManager(ResourceManager):
    """Feeds the resources to `kubectl apply` or `kubectl delete` on stdin."""

    def __init__(self, options: KubectlOptions | None = None) -> None:
        """Initialize KubectlManager."""
        self._options = options or KubectlOptions()

    async def _stream(self, action: str, args: list[str], resources: list[Resource]) -> None:
        if not resources:
            _LOGGER.debug("No resources to %s", action)
            return
        cmd = self._options.command(action, *args)
        stdin = encode_objects(r.k8s_object for r in resources)
        _LOGGER.info("Running kubectl %s on %d resources", action, len(resources))
        try:
            await stream(cmd, lambda line: _LOGGER.info("[kubectl] %s", line), stdin=stdin)
        except CommandException as err:
            for line in err.stderr.splitlines():
                _LOGGER.error("[kubectl] %s", line)
            raise

    async def apply(self, resources: list[Resource]) -> None:
        args = [*self._options.server_side_args(), "-f", "-"]
        await self._stream("apply", args, resources)

    async def delete(self, resources: list[Resource]) -> None:
        args = ["--ignore-not-found=true", "--wait=false", "-f", "-"]
        await self._stream("delete", args, resources)
