"""Library for planning the states of the resources between two snapshots."""

import logging

from .model import PlanState, Resource, ResourceState

__all__ = [
    "Planner",
    "split_plan",
]

_LOGGER = logging.getLogger(__name__)


class Planner:
    """Compares the old and new resources to decide what should exist.

    Every new resource must exist and every old resource missing from the new
    snapshot must be missing. With `include_changes_only` new resources equal
    to their old version are left out of the plan.
    """

    def __init__(self, include_changes_only: bool = False) -> None:
        self._include_changes_only = include_changes_only

    def plan(self, old: list[Resource], new: list[Resource]) -> list[PlanState]:
        old_by_id = {r.id: r for r in old}
        new_by_id = {r.id: r for r in new}

        states: list[PlanState] = []
        exists = 0
        for resource_id, resource in new_by_id.items():
            if self._include_changes_only:
                old_resource = old_by_id.get(resource_id)
                if old_resource is not None and old_resource.k8s_object == resource.k8s_object:
                    _LOGGER.debug("Resource %s ignored, no changes", resource_id)
                    continue
            states.append(PlanState(ResourceState.EXISTS, resource))
            exists += 1

        missing = 0
        for resource_id, resource in old_by_id.items():
            if resource_id in new_by_id:
                continue
            states.append(PlanState(ResourceState.MISSING, resource))
            missing += 1

        _LOGGER.info(
            "%d planned states, %d missing, %d exists", len(states), missing, exists
        )
        return states


def split_plan(states: list[PlanState]) -> tuple[list[Resource], list[Resource]]:
    """Split the plan into the resources to apply and the ones to delete."""
    apply = [s.resource for s in states if s.state == ResourceState.EXISTS]
    delete = [s.resource for s in states if s.state == ResourceState.MISSING]
    return apply, delete
