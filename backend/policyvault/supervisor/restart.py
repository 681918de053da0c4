"""Resource-triggered restart supervisor.

One long-lived task samples host load every ``interval`` seconds. When a
sample exceeds ``threshold`` it stops sampling, waits ``grace_delay``
seconds, spawns a detached replacement process with the original argument
vector and exits the current process. In-flight requests are not drained.

State machine:
    SAMPLING -> OVERLOAD_DETECTED -> RESTARTING -> (process exit)

A spawn that fails every retry returns the supervisor to SAMPLING instead
of exiting, so the service stays up.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import sys
from collections.abc import Awaitable, Callable, Sequence
from enum import Enum
from typing import Any

from policyvault.supervisor.load import LoadSampler, load_average

logger = logging.getLogger(__name__)


class SupervisorState(Enum):
    """Restart supervisor states."""

    SAMPLING = "sampling"
    OVERLOAD_DETECTED = "overload_detected"
    RESTARTING = "restarting"


def capture_argv() -> list[str]:
    """Return the command line that started this process.

    Prefers ``sys.orig_argv`` so interpreter options such as ``-m policyvault``
    survive; the interpreter path is replaced by ``sys.executable``.
    """
    orig = getattr(sys, "orig_argv", None)
    if orig:
        return [sys.executable, *orig[1:]]
    return [sys.executable, *sys.argv]


def spawn_detached(argv: Sequence[str]) -> subprocess.Popen:
    """Start ``argv`` in its own session, inheriting stdin/stdout/stderr."""
    return subprocess.Popen(list(argv), start_new_session=True, close_fds=True)


def hard_exit(code: int = 0) -> None:
    """Flush logging and terminate immediately, skipping interpreter cleanup."""
    logging.shutdown()
    os._exit(code)


class RestartSupervisor:
    """Samples load and hands off to a fresh process on overload.

    Args:
        threshold: A sample strictly greater than this triggers a restart.
        interval: Seconds between samples.
        grace_delay: Seconds between overload detection and the spawn.
        sampler: Zero-argument callable returning the current load metric.
        spawner: Callable starting the replacement from an argument vector.
        exit_process: Callable terminating the current process.
        sleep: Awaitable sleep, injectable for tests.
        argv: Argument vector for the replacement; captured at
            construction when omitted.
        spawn_attempts: Spawn tries before giving up.
        spawn_backoff: Seconds before the first retry; doubles each retry.
    """

    def __init__(
        self,
        threshold: float = 70.0,
        interval: float = 1.0,
        grace_delay: float = 5.0,
        sampler: LoadSampler = load_average,
        spawner: Callable[[Sequence[str]], Any] = spawn_detached,
        exit_process: Callable[[int], Any] = hard_exit,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        argv: Sequence[str] | None = None,
        spawn_attempts: int = 3,
        spawn_backoff: float = 1.0,
    ) -> None:
        self.threshold = threshold
        self.interval = interval
        self.grace_delay = grace_delay
        self.argv = list(argv) if argv is not None else capture_argv()
        self.state = SupervisorState.SAMPLING
        self.last_sample: float | None = None
        self._sampler = sampler
        self._spawner = spawner
        self._exit_process = exit_process
        self._sleep = sleep
        self._spawn_attempts = max(1, spawn_attempts)
        self._spawn_backoff = spawn_backoff

    def _transition(self, state: SupervisorState) -> None:
        logger.info("Restart supervisor: %s -> %s", self.state.value, state.value)
        self.state = state

    def tick(self) -> SupervisorState:
        """Take one sample and apply the threshold; return the new state."""
        value = self._sampler()
        self.last_sample = value
        logger.debug("Current load: %.2f", value)

        if value > self.threshold:
            logger.warning(
                "Load %.2f exceeds %.2f. Restarting the server in %.1fs",
                value, self.threshold, self.grace_delay,
            )
            self._transition(SupervisorState.OVERLOAD_DETECTED)
            self._transition(SupervisorState.RESTARTING)
        return self.state

    async def run(self) -> None:
        """Sample until a restart hands off to the replacement process."""
        while True:
            try:
                state = self.tick()
            except OSError as exc:
                logger.error("Load sample failed: %s", exc)
                await self._sleep(self.interval)
                continue
            if state is SupervisorState.RESTARTING:
                if await self.restart():
                    return
                self._transition(SupervisorState.SAMPLING)
            await self._sleep(self.interval)

    async def restart(self) -> bool:
        """Wait the grace delay, spawn the replacement, then exit.

        Returns True once exit_process has been called, False when every
        spawn attempt failed.
        """
        await self._sleep(self.grace_delay)

        backoff = self._spawn_backoff
        for attempt in range(1, self._spawn_attempts + 1):
            try:
                self._spawner(self.argv)
            except (OSError, ValueError, subprocess.SubprocessError) as exc:
                logger.error(
                    "Spawning replacement failed (attempt %d/%d): %s",
                    attempt, self._spawn_attempts, exc,
                )
                if attempt < self._spawn_attempts:
                    await self._sleep(backoff)
                    backoff *= 2
                continue

            logger.info("Replacement process started; exiting")
            self._exit_process(0)
            return True

        logger.error("Giving up on restart after %d attempts", self._spawn_attempts)
        return False
