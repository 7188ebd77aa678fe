"""Library for issuing commands using asyncio and returning the result.

Every external binary kahoy talks to (kubectl, diff and the group hooks) is
started through a `Command`. Output is either captured and returned once the
process exits, or streamed line by line while it runs.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
import contextlib
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, TypeVar

from .exceptions import CommandException, KahoyTimeoutException

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 20
_SEM = asyncio.Semaphore(_CONCURRENCY)
_STREAM_LIMIT = 2**20

__all__ = [
    "Task",
    "Command",
    "run",
    "stream",
]

T = TypeVar("T")


class Task(ABC):
    """An instance of a async task to execute."""

    @abstractmethod
    async def run(self, stdin: bytes | None = None) -> bytes:
        """Execute the task and return the result."""


def format_path(path: Path) -> str:
    """Format path for debugging."""
    if path.is_absolute():
        cwd = Path.cwd()
        if path.is_relative_to(cwd):
            rel_path = str(path.relative_to(cwd))
            return f"{rel_path} (abs)"
    return str(path)


@dataclass
class Command(Task):
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    cwd: Path | None = None
    """Current working directory."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    retcodes: list[int] | None = None
    """Non-zero error codes that are allowed to indicate success (e.g. for diff)."""

    env: dict[str, str] | None = None
    """Environment variables added to the inherited environment."""

    timeout: float | None = None
    """Seconds before the process is killed, unlimited when unset."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string."""
        cwd: str = ""
        if self.cwd:
            cwd = f"({format_path(self.cwd)}) "
        return f"{cwd}{self.string}"

    async def _start(self, stderr: int) -> asyncio.subprocess.Process:
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        try:
            return await asyncio.create_subprocess_exec(
                *self.cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=stderr,
                cwd=self.cwd,
                env=env,
                limit=_STREAM_LIMIT,
            )
        except OSError as err:
            raise self.exc(f"Command '{self}' could not be started: {err}") from err

    async def _deadline(self, aw: Awaitable[T]) -> T:
        if self.timeout is None:
            return await aw
        try:
            return await asyncio.wait_for(aw, self.timeout)
        except asyncio.TimeoutError as err:
            raise KahoyTimeoutException(f"Command '{self}' timed out") from err

    def _check(self, returncode: int | None, out: bytes, err: bytes) -> None:
        if not returncode or (self.retcodes and returncode in self.retcodes):
            return
        errors = [f"Command '{self}' failed with return code {returncode}"]
        if out:
            errors.append(out.decode("utf-8"))
        if err:
            errors.append(err.decode("utf-8"))
        _LOGGER.debug("\n".join(errors))
        raise self.exc(
            "\n".join(errors),
            returncode=returncode,
            stderr=err.decode("utf-8", errors="replace"),
        )

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command: %s", self)
        proc = await self._start(subprocess.PIPE)
        try:
            out, err = await self._deadline(proc.communicate(stdin))
        finally:
            await _kill(proc)
        self._check(proc.returncode, out, err)
        return out

    async def stream(
        self,
        on_line: Callable[[str], Any],
        stdin: bytes | None = None,
        combined: bool = False,
    ) -> bytes:
        """Run the command calling `on_line` for every line of stdout.

        With `combined` stderr is merged into the streamed output, otherwise
        it is captured and returned once the command succeeded.
        """
        _LOGGER.debug("Streaming command: %s", self)
        proc = await self._start(subprocess.STDOUT if combined else subprocess.PIPE)

        async def _communicate() -> bytes:
            _, _, err = await asyncio.gather(
                _feed(proc, stdin),
                _read_lines(proc.stdout, on_line),
                _read_all(proc.stderr),
            )
            await proc.wait()
            return err

        try:
            err = await self._deadline(_communicate())
        except ValueError as error:
            # Raised by the reader on lines longer than the stream limit.
            raise self.exc(f"Command '{self}' output could not be read: {error}") from error
        finally:
            await _kill(proc)
        self._check(proc.returncode, b"", err)
        return err


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()


async def _feed(proc: asyncio.subprocess.Process, stdin: bytes | None) -> None:
    if proc.stdin is None:
        return
    try:
        if stdin:
            proc.stdin.write(stdin)
            await proc.stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # The exit code reports why the process stopped reading.
        _LOGGER.debug("Process closed stdin before reading all the input")
    finally:
        proc.stdin.close()


async def _read_lines(
    reader: asyncio.StreamReader | None, on_line: Callable[[str], Any]
) -> None:
    if reader is None:
        return
    async for line in reader:
        on_line(line.decode("utf-8", errors="replace").rstrip("\r\n"))


async def _read_all(reader: asyncio.StreamReader | None) -> bytes:
    if reader is None:
        return b""
    return await reader.read()


async def run(cmd: Task, stdin: bytes | None = None) -> str:
    """Run the specified command and return stdout."""
    async with _SEM:
        out = await cmd.run(stdin)
    return out.decode("utf-8") if out else ""


async def stream(
    cmd: Command,
    on_line: Callable[[str], Any],
    stdin: bytes | None = None,
    combined: bool = False,
) -> str:
    """Run the specified command streaming its output, returning stderr."""
    async with _SEM:
        err = await cmd.stream(on_line, stdin=stdin, combined=combined)
    return err.decode("utf-8") if err else ""
