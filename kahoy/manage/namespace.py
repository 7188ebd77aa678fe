"""Resource manager creating the missing namespaces before an apply."""

import logging

from kahoy.command import run
from kahoy.exceptions import CommandException
from kahoy.kubectl import KubectlOptions
from kahoy.model import Resource

from .manager import ResourceManager

__all__ = [
    "NamespaceEnsureManager",
]

_LOGGER = logging.getLogger(__name__)


class NamespaceEnsureManager(ResourceManager):
    """Creates the namespaces of the applied resources when they don't exist."""

    def __init__(
        self, manager: ResourceManager, options: KubectlOptions | None = None
    ) -> None:
        """Initialize NamespaceEnsureManager."""
        self._manager = manager
        self._options = options or KubectlOptions()

    async def ensure_namespace(self, namespace: str) -> None:
        """Create the namespace if kubectl reports it is not found."""
        try:
            await run(self._options.command("get", "namespace", namespace))
            _LOGGER.debug("Namespace %s exists", namespace)
            return
        except CommandException as err:
            if "notfound" not in err.stderr.lower():
                raise
        _LOGGER.info("Namespace %s missing, creating it", namespace)
        await run(self._options.command("create", "namespace", namespace))

    async def apply(self, resources: list[Resource]) -> None:
        namespaces = sorted({r.k8s_object.namespace for r in resources} - {""})
        for namespace in namespaces:
            await self.ensure_namespace(namespace)
        await self._manager.apply(resources)

    async def delete(self, resources: list[Resource]) -> None:
        await self._manager.delete(resources)
