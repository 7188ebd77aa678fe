"""State repository writing the run state as a JSON document."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
from typing import TextIO

from mashumaro import DataClassDictMixin

from kahoy.exceptions import FileSystemException
from kahoy.model import Resource, State

from .repository import StateRepository

__all__ = [
    "JSONStateRepository",
]

_LOGGER = logging.getLogger(__name__)

STATE_VERSION = "v1"
_ZERO_TIME = "0001-01-01T00:00:00Z"


def _rfc3339(value: datetime | None) -> str:
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.replace(microsecond=0).isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


@dataclass
class JSONResource(DataClassDictMixin):
    id: str
    group: str
    gvk: str
    api_version: str
    kind: str
    namespace: str
    name: str

    @classmethod
    def from_resource(cls, resource: Resource) -> "JSONResource":
        obj = resource.k8s_object
        return cls(
            id=resource.id,
            group=resource.group_id,
            gvk="/".join([obj.group, obj.version, obj.kind]),
            api_version=obj.api_version,
            kind=obj.kind,
            namespace=obj.namespace,
            name=obj.name,
        )


@dataclass
class JSONState(DataClassDictMixin):
    """Serialized form of a run state."""

    id: str
    started_at: str
    ended_at: str
    version: str = STATE_VERSION
    applied_resources: list[JSONResource] = field(default_factory=list)
    deleted_resources: list[JSONResource] = field(default_factory=list)

    @classmethod
    def from_state(cls, state: State) -> "JSONState":
        return cls(
            id=state.id,
            started_at=_rfc3339(state.started_at),
            ended_at=_rfc3339(state.ended_at),
            applied_resources=[
                JSONResource.from_resource(r) for r in state.applied_resources
            ],
            deleted_resources=[
                JSONResource.from_resource(r) for r in state.deleted_resources
            ],
        )

    def json(self) -> str:
        data = self.to_dict()
        ordered = {
            "version": data["version"],
            "id": data["id"],
            "started_at": data["started_at"],
            "ended_at": data["ended_at"],
            "applied_resources": data["applied_resources"],
            "deleted_resources": data["deleted_resources"],
        }
        return json.dumps(ordered, separators=(",", ":"), ensure_ascii=False)


class JSONStateRepository(StateRepository):
    """Writes each stored state as a compact JSON document to a stream."""

    def __init__(self, out: TextIO) -> None:
        """Initialize JSONStateRepository."""
        self._out = out

    async def store_state(self, state: State) -> None:
        content = JSONState.from_state(state).json()
        try:
            self._out.write(content)
            self._out.flush()
        except OSError as err:
            raise FileSystemException(f"could not write JSON state: {err}") from err
        _LOGGER.debug("State %s written as JSON", state.id)
