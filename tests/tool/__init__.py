"""Test helpers for kahoy tools."""

import sys

from kahoy.command import Command, run

KAHOY_BIN = [sys.executable, "-m", "kahoy"]


async def run_command(args: list[str], env: dict[str, str] | None = None) -> str:
    return await run(Command(KAHOY_BIN + args, env=env))
