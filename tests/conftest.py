"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path

import pytest

from claude_agent_bridge.spawn import LocalSpawnedProcess, SpawnedProcess, SpawnOptions

FAKE_CLI = Path(__file__).parent / "fixtures" / "fake_cli.py"


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds or fail the test."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                pytest.fail("Condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait_until


@pytest.fixture
def fake_cli_spawn() -> Callable[[SpawnOptions], Awaitable[SpawnedProcess]]:
    """Spawn function running tests/fixtures/fake_cli.py with the current interpreter."""

    async def _spawn(options: SpawnOptions) -> SpawnedProcess:
        return await LocalSpawnedProcess.spawn(
            SpawnOptions(
                command=sys.executable,
                args=[str(FAKE_CLI), *options.args],
                cwd=options.cwd,
                env=options.env,
            )
        )

    return _spawn
