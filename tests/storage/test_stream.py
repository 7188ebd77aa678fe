"""Tests for the stream loader."""

import io
import sys
import threading

import pytest

from kahoy.command import Command, run
from kahoy.config import AppConfig, GroupConfig
from kahoy.exceptions import (
    FileSystemException,
    KahoyTimeoutException,
    NotValidException,
)
from kahoy.model import ROOT_GROUP_ID
from kahoy.storage.stream import StreamLoader

MANIFESTS = b"""\
apiVersion: v1
kind: Namespace
metadata:
  name: test
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: config
  namespace: test
"""


async def test_load() -> None:
    """Test all the resources belong to the single stream group."""
    app_config = AppConfig(groups=[GroupConfig(id=ROOT_GROUP_ID, priority=5)])
    repo = await StreamLoader(io.BytesIO(MANIFESTS), app_config=app_config).load()

    resources = await repo.list_resources()
    assert [r.id for r in resources] == [
        "core/v1/Namespace/default/test",
        "core/v1/ConfigMap/test/config",
    ]
    assert {r.group_id for r in resources} == {ROOT_GROUP_ID}
    assert {r.manifest_path for r in resources} == {"stdin"}

    group = await repo.get_group(ROOT_GROUP_ID)
    assert group.path == ""
    assert group.priority == 5


async def test_duplicated_resource() -> None:
    """Test the same resource twice in the stream."""
    with pytest.raises(NotValidException, match="resource collision"):
        await StreamLoader(io.BytesIO(MANIFESTS + b"---\n" + MANIFESTS)).load()


class BlockingReader(io.RawIOBase):
    """Reader that never returns until released."""

    def __init__(self) -> None:
        self.release = threading.Event()

    def read(self, size: int = -1) -> bytes:
        self.release.wait(5)
        return b""


async def test_read_timeout() -> None:
    """Test a stalled reader is abandoned."""
    reader = BlockingReader()
    try:
        with pytest.raises(KahoyTimeoutException, match="timeout reading manifests"):
            await StreamLoader(reader, timeout=0.1).load()
    finally:
        reader.release.set()


STALLED_STDIN = """\
import asyncio
import os

from kahoy.exceptions import KahoyTimeoutException
from kahoy.storage.stream import StreamLoader

read_fd, write_fd = os.pipe()
try:
    asyncio.run(StreamLoader(os.fdopen(read_fd, "rb"), timeout=0.2).load())
except KahoyTimeoutException as err:
    print(err)
"""


async def test_stalled_reader_exits() -> None:
    """Test the interpreter exits when nothing is written to the stream."""
    result = await run(Command([sys.executable, "-c", STALLED_STDIN], timeout=10))
    assert "timeout reading manifests from stdin after 0.2s" in result


class FailingReader(io.RawIOBase):
    """Reader failing with an I/O error."""

    def read(self, size: int = -1) -> bytes:
        raise OSError("bad file descriptor")


async def test_read_error() -> None:
    """Test reader errors are reported as file system errors."""
    with pytest.raises(FileSystemException, match="bad file descriptor"):
        await StreamLoader(FailingReader()).load()
