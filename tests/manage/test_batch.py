"""Tests for the priority batch manager."""

import pytest

from kahoy.config import GroupConfig
from kahoy.exceptions import KahoyException, MissingException
from kahoy.manage import PriorityManager

from . import RecordingManager, new_groups, new_resource

GROUPS = new_groups(
    GroupConfig(id="g1", priority=235),
    GroupConfig(id="g2", priority=42),
    GroupConfig(id="g3", priority=579),
)
R1 = new_resource("r1", "g1")
R2 = new_resource("r2", "g2")
R3 = new_resource("r3", "g1")
R4 = new_resource("r4", "g3")
R5 = new_resource("r5", "g2")


async def test_apply_batches_by_priority() -> None:
    """Test batches are applied from the lowest priority."""
    inner = RecordingManager()
    await PriorityManager(inner, GROUPS).apply([R1, R2, R3, R4, R5])
    assert inner.applied == [[R2, R5], [R1, R3], [R4]]


async def test_apply_stops_on_failure() -> None:
    """Test a failing batch stops the following ones."""
    inner = RecordingManager(fail=True)
    with pytest.raises(KahoyException, match="apply failed"):
        await PriorityManager(inner, GROUPS).apply([R1, R2, R4])
    assert inner.applied == [[R2]]


async def test_disable_priorities() -> None:
    """Test a single batch when priorities are disabled."""
    inner = RecordingManager()
    await PriorityManager(inner, GROUPS, disable_priorities=True).apply([R1, R2, R4])
    assert inner.applied == [[R1, R2, R4]]


async def test_delete_single_batch() -> None:
    """Test deletes ignore the priorities."""
    inner = RecordingManager()
    await PriorityManager(inner, GROUPS).delete([R1, R2, R3, R4, R5])
    assert inner.deleted == [[R1, R2, R3, R4, R5]]


async def test_missing_group() -> None:
    """Test resources of an unknown group."""
    with pytest.raises(MissingException):
        await PriorityManager(RecordingManager(), GROUPS).apply([new_resource("x", "unknown")])
