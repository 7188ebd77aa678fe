"""Resource manager printing the resources as a tree without a cluster."""

from collections import defaultdict
import logging
from typing import TextIO

from kahoy.model import Resource

from .manager import ResourceManager

__all__ = [
    "DryRunManager",
]

_LOGGER = logging.getLogger(__name__)


def render_tree(title: str, resources: list[Resource]) -> str:
    """Render the resources grouped by group id, sorted by group and id.

    ```
    ⯈ Apply (2 resources)
    ├── ⯈ app1 (1 resources)
    │   └── apps/v1/Deployment/default/app1 (app1/deploy.yaml)
    └── ⯈ app2 (1 resources)
        └── apps/v1/Deployment/default/app2 (app2/deploy.yaml)
    ```
    """
    if not resources:
        return ""
    by_group: dict[str, list[Resource]] = defaultdict(list)
    for resource in sorted(resources, key=lambda r: (r.group_id, r.id)):
        by_group[resource.group_id].append(resource)

    lines = [f"\n⯈ {title} ({len(resources)} resources)"]
    group_ids = sorted(by_group)
    for i, group_id in enumerate(group_ids):
        group_resources = by_group[group_id]
        last_group = i + 1 >= len(group_ids)
        join = "└── " if last_group else "├── "
        indent = " " if last_group else "│"
        lines.append(f"{join}⯈ {group_id} ({len(group_resources)} resources)")
        for j, resource in enumerate(group_resources):
            res_join = "└── " if j + 1 >= len(group_resources) else "├── "
            lines.append(
                f"{indent}   {res_join}{resource.id} ({resource.manifest_path})"
            )
    return "\n".join(lines) + "\n\n"


class DryRunManager(ResourceManager):
    """Writes the resources that would be applied or deleted to `out`."""

    def __init__(self, out: TextIO) -> None:
        """Initialize DryRunManager."""
        self._out = out

    def _print(self, title: str, resources: list[Resource]) -> None:
        _LOGGER.debug("Dry run %s of %d resources", title.lower(), len(resources))
        self._out.write(render_tree(title, resources))
        self._out.flush()

    async def apply(self, resources: list[Resource]) -> None:
        self._print("Apply", resources)

    async def delete(self, resources: list[Resource]) -> None:
        self._print("Delete", resources)
