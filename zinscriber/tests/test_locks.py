"""
Tests for the outpoint lock table.
"""

from __future__ import annotations

import asyncio

import pytest

from zinscore.errors import LockConflictError
from zinscore.models import Outpoint
from zinscriber.locks import LockTable

A = Outpoint(txid="aa" * 32, vout=0)
B = Outpoint(txid="bb" * 32, vout=1)
C = Outpoint(txid="cc" * 32, vout=2)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestAcquire:
    @pytest.mark.asyncio
    async def test_acquire_and_holder(self) -> None:
        table = LockTable()
        locks = await table.acquire([A, B], "alice", "attempt-1")

        assert [lock.outpoint for lock in locks] == [A, B]
        assert table.holder(A).owner == "alice"
        assert table.holder(C) is None
        assert len(table) == 2

    @pytest.mark.asyncio
    async def test_duplicates_collapse(self) -> None:
        table = LockTable()
        locks = await table.acquire([A, A, B], "alice", "attempt-1")
        assert len(locks) == 2

    @pytest.mark.asyncio
    async def test_other_owner_conflicts(self) -> None:
        table = LockTable()
        await table.acquire([A], "alice", "attempt-1")

        with pytest.raises(LockConflictError) as exc_info:
            await table.acquire([A], "bob", "attempt-2")
        assert exc_info.value.outpoint == A
        assert exc_info.value.holder == "alice"
        assert exc_info.value.attempt_id == "attempt-1"

    @pytest.mark.asyncio
    async def test_all_or_nothing(self) -> None:
        table = LockTable()
        await table.acquire([B], "alice", "attempt-1")

        with pytest.raises(LockConflictError):
            await table.acquire([A, B, C], "bob", "attempt-2")
        assert table.holder(A) is None
        assert table.holder(C) is None
        assert len(table) == 1

    @pytest.mark.asyncio
    async def test_same_owner_reacquire(self) -> None:
        table = LockTable()
        await table.acquire([A], "alice", "attempt-1")
        await table.acquire([A], "alice", "attempt-2")
        assert table.holder(A).attempt_id == "attempt-2"

    @pytest.mark.asyncio
    async def test_exclusive_same_owner_conflicts(self) -> None:
        table = LockTable()
        await table.acquire([A], "alice", "attempt-1")

        with pytest.raises(LockConflictError):
            await table.acquire([A], "alice", "attempt-2", exclusive=True)
        # The same attempt may always re-lock its own outpoints
        await table.acquire([A], "alice", "attempt-1", exclusive=True)

    @pytest.mark.asyncio
    async def test_concurrent_acquire_single_winner(self) -> None:
        table = LockTable()
        results = await asyncio.gather(
            *(table.acquire([A, B], f"owner-{i}", f"attempt-{i}") for i in range(10)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, BaseException)]
        conflicts = [r for r in results if isinstance(r, LockConflictError)]
        assert len(winners) == 1
        assert len(conflicts) == 9
        assert table.holder(A).owner == table.holder(B).owner


class TestRelease:
    @pytest.mark.asyncio
    async def test_release(self) -> None:
        table = LockTable()
        await table.acquire([A, B], "alice", "attempt-1")

        assert await table.release([A, C]) == 1
        assert table.holder(A) is None
        assert table.holder(B) is not None

    @pytest.mark.asyncio
    async def test_release_attempt(self) -> None:
        table = LockTable()
        await table.acquire([A, B], "alice", "attempt-1")
        await table.acquire([C], "bob", "attempt-2")

        assert await table.release_attempt("attempt-1") == 2
        assert await table.release_attempt("attempt-1") == 0
        assert len(table) == 1

    @pytest.mark.asyncio
    async def test_force_release(self) -> None:
        table = LockTable()
        await table.acquire([A], "alice", "attempt-1")

        assert await table.force_release(A) is True
        assert await table.force_release(A) is False
        await table.acquire([A], "bob", "attempt-2")

    @pytest.mark.asyncio
    async def test_prune_stale(self) -> None:
        clock = FakeClock()
        table = LockTable(clock=clock)
        await table.acquire([A], "alice", "attempt-1")
        clock.now += 500
        await table.acquire([B], "bob", "attempt-2")
        clock.now += 600

        stale = await table.prune_stale(max_age=900)

        assert [lock.outpoint for lock in stale] == [A]
        assert table.holder(A) is None
        assert table.holder(B) is not None

    @pytest.mark.asyncio
    async def test_locks_for_owner(self) -> None:
        table = LockTable()
        await table.acquire([A, B], "alice", "attempt-1")
        await table.acquire([C], "bob", "attempt-2")

        assert {lock.outpoint for lock in table.locks_for_owner("alice")} == {A, B}
        assert table.locks_for_owner("carol") == []
