"""Resource manager running the group hooks around an apply.

The pre hooks of every group being applied run concurrently before the
resources are applied, and the post hooks run concurrently once the apply
succeeded. A failing pre hook prevents the apply. Each hook is an external
command that receives the kubectl settings through its environment:

  KAHOY_KUBECTL_CMD, KAHOY_KUBE_CONFIG, KAHOY_KUBE_CONTEXT,
  KAHOY_HOOK_TYPE (pre or post) and KAHOY_HOOK_GROUP.
"""

import asyncio
import logging

from kahoy.command import Command, stream
from kahoy.exceptions import HookException, KahoyException, KahoyTimeoutException
from kahoy.kubectl import KubectlOptions
from kahoy.model import Group, HookSpec, Resource
from kahoy.storage import GroupRepository

from .manager import ResourceManager

__all__ = [
    "HookManager",
]

_LOGGER = logging.getLogger(__name__)

PRE = "pre"
POST = "post"


class HookManager(ResourceManager):
    """Wraps an apply with the pre and post hooks of the applied groups."""

    def __init__(
        self,
        manager: ResourceManager,
        group_repo: GroupRepository,
        kubectl: KubectlOptions | None = None,
    ) -> None:
        """Initialize HookManager."""
        self._manager = manager
        self._group_repo = group_repo
        self._kubectl = kubectl or KubectlOptions()

    def _env(self, hook_type: str, group: Group) -> dict[str, str]:
        return {
            "KAHOY_KUBECTL_CMD": self._kubectl.kubectl_cmd,
            "KAHOY_KUBE_CONFIG": self._kubectl.kube_config or "",
            "KAHOY_KUBE_CONTEXT": self._kubectl.kube_context or "",
            "KAHOY_HOOK_TYPE": hook_type,
            "KAHOY_HOOK_GROUP": group.id,
        }

    async def _run_hook(self, hook_type: str, group: Group, hook: HookSpec) -> None:
        cmd = Command(
            hook.cmd,
            exc=HookException,
            env=self._env(hook_type, group),
            timeout=hook.timeout.total_seconds() if hook.timeout else None,
        )
        logger = _LOGGER.getChild(group.id)

        def on_line(line: str) -> None:
            logger.info("[%s-hook] %s", hook_type, line)

        _LOGGER.debug("Running %s hook of group %s: %s", hook_type, group.id, cmd)
        await stream(cmd, on_line, combined=True)

    async def _run_hooks(self, hook_type: str, groups: list[Group]) -> None:
        hooks = []
        for group in groups:
            hook = group.hooks.pre if hook_type == PRE else group.hooks.post
            if hook is not None and hook.cmd:
                hooks.append((group, hook))
        if not hooks:
            return

        _LOGGER.info("Running %d %s hooks", len(hooks), hook_type)
        try:
            async with asyncio.TaskGroup() as tg:
                for group, hook in hooks:
                    tg.create_task(self._run_hook(hook_type, group, hook))
        except ExceptionGroup as eg:
            err = eg.exceptions[0]
            if isinstance(err, KahoyTimeoutException):
                raise KahoyTimeoutException(f"{hook_type} hooks error: {err}") from err
            if isinstance(err, KahoyException):
                raise HookException(f"{hook_type} hooks error: {err}") from err
            raise err

    async def apply(self, resources: list[Resource]) -> None:
        groups: list[Group] = []
        for group_id in dict.fromkeys(r.group_id for r in resources):
            groups.append(await self._group_repo.get_group(group_id))

        await self._run_hooks(PRE, groups)
        await self._manager.apply(resources)
        await self._run_hooks(POST, groups)

    async def delete(self, resources: list[Resource]) -> None:
        await self._manager.delete(resources)
