"""
Advisory lock table keyed by outpoint.

At most one owner holds an outpoint at a time. Acquisition over a set of
outpoints is all-or-nothing.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from loguru import logger

from zinscore.constants import STALE_LOCK_SECONDS
from zinscore.errors import LockConflictError
from zinscore.models import Outpoint


@dataclass
class Lock:
    outpoint: Outpoint
    owner: str
    attempt_id: str
    acquired_at: float


class LockTable:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._locks: dict[Outpoint, Lock] = {}
        self._mutex = asyncio.Lock()
        self._clock = clock

    def __len__(self) -> int:
        return len(self._locks)

    def _conflict(self, lock: Lock | None, owner: str, attempt_id: str, exclusive: bool) -> bool:
        if lock is None:
            return False
        if lock.owner != owner:
            return True
        return exclusive and lock.attempt_id != attempt_id

    async def acquire(
        self,
        outpoints: Iterable[Outpoint],
        owner: str,
        attempt_id: str,
        exclusive: bool = False,
    ) -> list[Lock]:
        """
        Lock every outpoint for ``owner`` or none of them.

        Re-acquiring an outpoint already held by the same owner is not a
        conflict and moves it to ``attempt_id``. With ``exclusive`` set, a
        same-owner lock held by a different attempt is a conflict.

        Raises:
            LockConflictError: On the first conflicting outpoint
        """
        wanted = list(dict.fromkeys(outpoints))
        async with self._mutex:
            for outpoint in wanted:
                existing = self._locks.get(outpoint)
                if self._conflict(existing, owner, attempt_id, exclusive):
                    raise LockConflictError(outpoint, existing.owner, existing.attempt_id)

            now = self._clock()
            acquired = []
            for outpoint in wanted:
                lock = Lock(outpoint=outpoint, owner=owner, attempt_id=attempt_id, acquired_at=now)
                self._locks[outpoint] = lock
                acquired.append(lock)

        logger.debug(f"Locked {len(acquired)} outpoint(s) for {owner} (attempt {attempt_id})")
        return acquired

    async def release(self, outpoints: Iterable[Outpoint]) -> int:
        """Release outpoints regardless of owner. Missing locks are ignored."""
        async with self._mutex:
            released = 0
            for outpoint in outpoints:
                if self._locks.pop(outpoint, None) is not None:
                    released += 1
        return released

    async def release_attempt(self, attempt_id: str) -> int:
        async with self._mutex:
            held = [op for op, lock in self._locks.items() if lock.attempt_id == attempt_id]
            for outpoint in held:
                del self._locks[outpoint]
        if held:
            logger.debug(f"Released {len(held)} outpoint(s) of attempt {attempt_id}")
        return len(held)

    async def prune_stale(self, max_age: float = STALE_LOCK_SECONDS) -> list[Lock]:
        """Delete locks older than ``max_age`` seconds and return them."""
        cutoff = self._clock() - max_age
        async with self._mutex:
            stale = [lock for lock in self._locks.values() if lock.acquired_at < cutoff]
            for lock in stale:
                del self._locks[lock.outpoint]
        if stale:
            logger.info(f"Pruned {len(stale)} stale lock(s)")
        return stale

    async def force_release(self, outpoint: Outpoint) -> bool:
        async with self._mutex:
            lock = self._locks.pop(outpoint, None)
        if lock is not None:
            logger.warning(f"Force-released {outpoint} held by {lock.owner}")
        return lock is not None

    def holder(self, outpoint: Outpoint) -> Lock | None:
        return self._locks.get(outpoint)

    def locks_for_owner(self, owner: str) -> list[Lock]:
        return [lock for lock in self._locks.values() if lock.owner == owner]
