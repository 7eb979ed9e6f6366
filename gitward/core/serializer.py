"""Per-repository FIFO execution slots for mutating operations."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


class _Slot:
    __slots__ = ("holders", "lock")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.holders = 0


class RepoLockRegistry:
    """Run coroutines exclusively per repository root, in arrival order.

    ``asyncio.Lock`` hands ownership to waiters first-come first-served, so
    operations on one root run strictly in submission order. Different roots
    use different slots and never block each other. A slot is dropped from
    the map once nothing holds or awaits it.

    All map updates happen synchronously on the event loop thread, so entry
    insertion and cleanup cannot race with each other.
    """

    def __init__(self) -> None:
        self._slots: dict[str, _Slot] = {}

    async def run(self, root: str, fn: Callable[[], Awaitable[T]]) -> T:
        slot = self._slots.get(root)
        if slot is None:
            slot = _Slot()
            self._slots[root] = slot
        slot.holders += 1
        queued_behind = slot.holders - 1
        if queued_behind:
            logger.debug("repo_lock_waiting", root=root, queued_behind=queued_behind)
        try:
            async with slot.lock:
                logger.debug("repo_lock_acquired", root=root)
                return await fn()
        finally:
            slot.holders -= 1
            if slot.holders == 0 and self._slots.get(root) is slot:
                del self._slots[root]
            logger.debug("repo_lock_released", root=root)

    def is_busy(self, root: str) -> bool:
        slot = self._slots.get(root)
        return slot is not None and slot.lock.locked()

    def waiting(self, root: str) -> int:
        """Number of operations queued behind the current holder."""
        slot = self._slots.get(root)
        if slot is None:
            return 0
        return max(slot.holders - (1 if slot.lock.locked() else 0), 0)

    def __len__(self) -> int:
        return len(self._slots)
