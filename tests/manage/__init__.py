"""Test helpers for the resource managers."""

from kahoy.config import GroupConfig
from kahoy.exceptions import KahoyException
from kahoy.manage import ResourceManager
from kahoy.model import Group, K8sObject, Resource, ResourceAndGroupFactory
from kahoy.storage import InMemoryRepository

FACTORY = ResourceAndGroupFactory()


def new_resource(name: str, group_id: str = "root", namespace: str | None = None) -> Resource:
    metadata = {"name": name}
    if namespace is not None:
        metadata["namespace"] = namespace
    return FACTORY.new_resource(
        K8sObject({"apiVersion": "v1", "kind": "ConfigMap", "metadata": metadata}),
        group_id,
        f"/manifests/{group_id}/{name}.yaml",
    )


def new_groups(*configs: GroupConfig) -> InMemoryRepository:
    groups: dict[str, Group] = {}
    for config in configs:
        groups[config.id] = FACTORY.new_group(config.id, f"/manifests/{config.id}", config)
    return InMemoryRepository(groups=groups)


class RecordingManager(ResourceManager):
    """Manager recording every call, optionally failing."""

    def __init__(self, fail: bool = False) -> None:
        self.applied: list[list[Resource]] = []
        self.deleted: list[list[Resource]] = []
        self.fail = fail

    async def apply(self, resources: list[Resource]) -> None:
        self.applied.append(resources)
        if self.fail:
            raise KahoyException("apply failed")

    async def delete(self, resources: list[Resource]) -> None:
        self.deleted.append(resources)
        if self.fail:
            raise KahoyException("delete failed")
