"""PersistCache Readiness - One-Shot Load Completion Signal.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import asyncio
from enum import Enum, auto
from typing import Optional


class ReadinessState(Enum):
    """Readiness token states."""

    PENDING = auto()
    READY = auto()
    FAILED = auto()


class ReadinessToken:
    """Broadcast-once signal settled exactly once to ready or failed.

    Waiters queue until the token settles. Once ready, ``wait`` returns
    immediately; once failed, every ``wait`` raises the settling error.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._state = ReadinessState.PENDING
        self._error: Optional[BaseException] = None

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def settled(self) -> bool:
        return self._state is not ReadinessState.PENDING

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def set_ready(self) -> None:
        """Settle as ready, releasing every waiter."""
        self._settle(ReadinessState.READY)

    def set_failed(self, error: BaseException) -> None:
        """Settle as failed; waiters raise ``error``."""
        self._error = error
        self._settle(ReadinessState.FAILED)

    def _settle(self, state: ReadinessState) -> None:
        if self.settled:
            raise RuntimeError(f"Readiness already settled as {self._state.name}")
        self._state = state
        self._event.set()

    async def wait(self) -> None:
        """Wait for the token to settle; raise the load error if it failed."""
        if not self._event.is_set():
            await self._event.wait()
        if self._error is not None:
            raise self._error

    def __repr__(self) -> str:
        return f"ReadinessToken(state={self._state.name})"


__all__ = ["ReadinessToken", "ReadinessState"]
