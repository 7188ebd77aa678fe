"""Data model for the resources kahoy loads, plans and applies.

A `Resource` is a schema-less kubernetes object (`K8sObject`) enriched with a
canonical id, the group it belongs to and the path it was loaded from. A
`Group` carries the operational policy (priority, wait and hooks) shared by all
the resources of a manifest directory.

Example usage:

```python
from kahoy import model

factory = model.ResourceAndGroupFactory()
obj = model.K8sObject({"apiVersion": "v1", "kind": "Pod", "metadata": {"name": "p"}})
resource = factory.new_resource(obj, group_id="apps", manifest_path="apps/pod.yaml")
print(resource.id)  # core/v1/Pod/default/p
```
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import enum
import logging
import threading
from typing import Any

from ulid import ULID

from .config import GroupConfig, HookConfig
from .exceptions import NotValidException

__all__ = [
    "K8sObject",
    "Resource",
    "Group",
    "GroupHooks",
    "HookSpec",
    "ResourceState",
    "PlanState",
    "State",
    "ResourceAndGroupFactory",
    "new_state",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_PRIORITY = 1000
ROOT_GROUP_ID = "root"
CORE_GROUP = "core"
DEFAULT_NAMESPACE = "default"


@dataclass(frozen=True)
class K8sObject:
    """An unstructured kubernetes API object.

    The object is copied when created so later changes to the source mapping
    are not observed. Equality compares the decoded structure, so the order of
    the keys in the original manifest does not matter.
    """

    obj: dict[str, Any]

    def __post_init__(self) -> None:
        if not isinstance(self.obj, dict):
            raise NotValidException(f"Kubernetes object is not a mapping: {self.obj}")
        object.__setattr__(self, "obj", copy.deepcopy(self.obj))

    def to_dict(self) -> dict[str, Any]:
        """Return a copy of the underlying object."""
        return copy.deepcopy(self.obj)

    @property
    def api_version(self) -> str:
        return str(self.obj.get("apiVersion") or "")

    @property
    def kind(self) -> str:
        return str(self.obj.get("kind") or "")

    @property
    def group(self) -> str:
        """The API group, empty for the core group."""
        if "/" in self.api_version:
            return self.api_version.split("/", 1)[0]
        return ""

    @property
    def version(self) -> str:
        return self.api_version.rsplit("/", 1)[-1]

    @property
    def metadata(self) -> dict[str, Any]:
        return self.obj.get("metadata") or {}

    @property
    def name(self) -> str:
        return str(self.metadata.get("name") or "")

    @property
    def namespace(self) -> str:
        return str(self.metadata.get("namespace") or "")

    @property
    def labels(self) -> dict[str, str]:
        return dict(self.metadata.get("labels") or {})

    @property
    def annotations(self) -> dict[str, str]:
        return dict(self.metadata.get("annotations") or {})

    @property
    def kube_type(self) -> str:
        """Return the `apps/v1/Deployment` or `v1/Pod` style type of the object."""
        parts = [self.group] if self.group else []
        return "/".join(parts + [self.version, self.kind])


@dataclass(frozen=True)
class Resource:
    """A loaded kubernetes object with its identity and origin."""

    id: str
    """Canonical id `<group>/<version>/<Kind>/<namespace>/<name>`."""

    group_id: str
    """Id of the group owning the resource."""

    manifest_path: str
    """Where the resource was loaded from."""

    k8s_object: K8sObject

    @property
    def name(self) -> str:
        return self.k8s_object.name


@dataclass(frozen=True)
class HookSpec:
    """A command executed before or after applying a group."""

    cmd: list[str]
    timeout: timedelta | None = None


@dataclass(frozen=True)
class GroupHooks:
    pre: HookSpec | None = None
    post: HookSpec | None = None


@dataclass(frozen=True)
class Group:
    """Operational policy shared by a set of resources."""

    id: str
    path: str
    priority: int = DEFAULT_PRIORITY
    wait: timedelta = timedelta(0)
    hooks: GroupHooks = field(default_factory=GroupHooks)


class ResourceState(str, enum.Enum):
    """Desired state of a resource in a plan."""

    EXISTS = "exists"
    MISSING = "missing"


@dataclass(frozen=True)
class PlanState:
    state: ResourceState
    resource: Resource


@dataclass
class State:
    """The record of a single run."""

    id: str
    started_at: datetime
    ended_at: datetime | None = None
    applied_resources: list[Resource] = field(default_factory=list)
    deleted_resources: list[Resource] = field(default_factory=list)


class _MonotonicULID:
    """Generate ULIDs that keep increasing within the same millisecond."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last: ULID | None = None
        self._last_ms = -1

    def new(self, now: datetime) -> ULID:
        ms = int(now.timestamp() * 1000)
        with self._lock:
            if self._last is not None and ms <= self._last_ms:
                value = ULID.from_int(int(self._last) + 1)
            else:
                value = ULID.from_datetime(now)
                self._last_ms = ms
            self._last = value
        return value


_STATE_IDS = _MonotonicULID()


def new_state(now: datetime | None = None) -> State:
    """Start the record of a new run identified by a time sortable id."""
    if now is None:
        now = datetime.now(timezone.utc)
    return State(id=str(_STATE_IDS.new(now)), started_at=now)


def _hook_spec(config: HookConfig | None) -> HookSpec | None:
    if config is None:
        return None
    return HookSpec(cmd=list(config.cmd), timeout=config.timeout or None)


class ResourceAndGroupFactory:
    """Builds resources and groups with canonical identities."""

    def new_resource(
        self, k8s_object: K8sObject, group_id: str, manifest_path: str
    ) -> Resource:
        """Create a resource for a decoded object."""
        if not k8s_object.api_version or not k8s_object.kind:
            raise NotValidException(
                f"Object in {manifest_path} is missing apiVersion or kind"
            )
        if not k8s_object.name:
            raise NotValidException(
                f"{k8s_object.kube_type} object in {manifest_path} is missing metadata.name"
            )
        return Resource(
            id=resource_id(k8s_object),
            group_id=group_id,
            manifest_path=manifest_path,
            k8s_object=k8s_object,
        )

    def new_group(
        self, group_id: str, path: str, config: GroupConfig | None = None
    ) -> Group:
        """Create a group, using defaults for anything not configured."""
        if config is None:
            return Group(id=group_id, path=path)
        return Group(
            id=group_id,
            path=path,
            priority=(
                config.priority if config.priority is not None else DEFAULT_PRIORITY
            ),
            wait=config.wait.duration if config.wait else timedelta(0),
            hooks=GroupHooks(
                pre=_hook_spec(config.hooks.pre if config.hooks else None),
                post=_hook_spec(config.hooks.post if config.hooks else None),
            ),
        )


def resource_id(k8s_object: K8sObject) -> str:
    """Return the canonical id of a kubernetes object."""
    group = k8s_object.group or CORE_GROUP
    namespace = k8s_object.namespace or DEFAULT_NAMESPACE
    return (
        f"{group}/{k8s_object.version}/{k8s_object.kind}/{namespace}/{k8s_object.name}"
    )
