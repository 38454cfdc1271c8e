"""Serialization point for tree mutations.

At most one mutation runs at a time per note root. Requests run in submission
order and each one starts only after the previous one finished and the tree
reflects its outcome. Once submitted, an operation runs to completion even if
the caller stops waiting for it.

This is an in-process guard only. Changes made by other processes (a git pull,
an editor writing files) are picked up by the next rebuild.
"""

import asyncio
import weakref
from pathlib import Path
from typing import Awaitable, Callable, Dict, Set, TypeVar

from loguru import logger

T = TypeVar("T")

# loop -> resolved root -> gate. asyncio primitives are bound to one event loop,
# and the CLI runs a fresh loop per command.
_GATES: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[Path, SyncGate]]" = (
    weakref.WeakKeyDictionary()
)


class SyncGate:
    """FIFO mutex for operations against one note root."""

    def __init__(self, root: Path):
        self.root = root
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of submitted operations that have not finished yet."""
        return len(self._tasks)

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        """Run ``operation`` once every earlier submission has finished.

        The operation runs in its own task, so cancelling the caller does not
        cancel an operation that was already submitted.

        Returns:
            Whatever ``operation`` returns; its exceptions propagate to the caller.
        """
        task = asyncio.ensure_future(self._run_exclusive(operation, label))
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return await asyncio.shield(task)

    async def _run_exclusive(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        async with self._lock:
            logger.trace(f"Sync gate admitted {label}: root={self.root}")
            return await operation()

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        # Mark the outcome as retrieved when the submitter stopped waiting
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Gate operation failed: {task.exception()!r}")

    async def drain(self) -> None:
        """Wait until every submitted operation has finished."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))


def get_gate(root: Path) -> SyncGate:
    """Return the gate shared by every service working on ``root``.

    Must be called from inside a running event loop.
    """
    loop = asyncio.get_running_loop()
    gates = _GATES.setdefault(loop, {})
    key = root.resolve()
    gate = gates.get(key)
    if gate is None:
        gate = SyncGate(key)
        gates[key] = gate
    return gate
