"""
Per-attempt transaction contexts and their state machine.

Inscription contexts move ``prepared -> broadcast -> completed``; split
contexts move ``prepared -> completed``. Either may fail from any
non-terminal state. Terminal states are final.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Callable
from enum import Enum
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from zinscore.constants import CONTEXT_RETENTION_SECONDS
from zinscore.errors import ContextNotFoundError, InvalidContextStateError
from zinscore.models import FundingInput, Outpoint


class ContextKind(str, Enum):
    INSCRIPTION = "inscription"
    SPLIT = "split"


class ContextStatus(str, Enum):
    """Transaction context states"""

    PREPARED = "prepared"
    BROADCAST = "broadcast"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ContextStatus.COMPLETED, ContextStatus.FAILED)


ALLOWED_TRANSITIONS: dict[ContextKind, dict[ContextStatus, frozenset[ContextStatus]]] = {
    ContextKind.INSCRIPTION: {
        ContextStatus.PREPARED: frozenset({ContextStatus.BROADCAST, ContextStatus.FAILED}),
        ContextStatus.BROADCAST: frozenset({ContextStatus.COMPLETED, ContextStatus.FAILED}),
    },
    ContextKind.SPLIT: {
        ContextStatus.PREPARED: frozenset({ContextStatus.COMPLETED, ContextStatus.FAILED}),
    },
}


def new_context_id() -> str:
    return uuid.uuid4().hex


class TransactionContext(BaseModel):
    """Everything needed to rebuild and finish one attempt's transactions."""

    context_id: str = Field(default_factory=new_context_id)
    kind: ContextKind
    owner_address: str
    pubkey: str
    inputs: list[FundingInput]
    epoch_id: int
    fee: int

    # Inscription parameters
    inscription_amount: int = 0
    platform_fee: int = 0
    treasury_address: str = ""
    envelope_script: str = ""
    redeem_script: str = ""
    locking_script: str = ""
    content_type: str = ""
    content_size: int = 0
    content_preview: str = ""

    # Split parameters
    split_count: int = 0
    split_amount: int = 0

    sighashes: list[str] = Field(default_factory=list)
    status: ContextStatus = ContextStatus.PREPARED
    # txid of the commit, or of the split transaction for split contexts
    commit_txid: str | None = None
    reveal_txid: str | None = None
    error: str | None = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    @property
    def outpoints(self) -> list[Outpoint]:
        return [f.outpoint for f in self.inputs]

    @property
    def input_value(self) -> int:
        return sum(f.value for f in self.inputs)


class ContextStore:
    """
    In-memory context table with point lookups and atomic transitions.

    ``lock_for`` hands out one asyncio lock per context so callers can
    serialize multi-step operations on the same context.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._contexts: dict[str, TransactionContext] = {}
        self._context_locks: dict[str, asyncio.Lock] = {}
        self._mutex = asyncio.Lock()
        self._clock = clock

    def __len__(self) -> int:
        return len(self._contexts)

    def lock_for(self, context_id: str) -> asyncio.Lock:
        """
        Return the lock serializing operations on one existing context.

        Raises:
            ContextNotFoundError: For an unknown id; no lock is created
        """
        self.get(context_id)
        lock = self._context_locks.get(context_id)
        if lock is None:
            lock = self._context_locks[context_id] = asyncio.Lock()
        return lock

    async def create(self, context: TransactionContext) -> TransactionContext:
        now = self._clock()
        context = context.model_copy(update={"created_at": now, "updated_at": now})
        async with self._mutex:
            if context.context_id in self._contexts:
                raise ValueError(f"Context {context.context_id} already exists")
            self._contexts[context.context_id] = context
        logger.debug(f"Context {context.context_id} created ({context.kind.value})")
        return context

    def get(self, context_id: str) -> TransactionContext:
        try:
            return self._contexts[context_id]
        except KeyError:
            raise ContextNotFoundError(f"Transaction context {context_id} not found") from None

    def require(
        self, context_id: str, expected: ContextStatus | tuple[ContextStatus, ...]
    ) -> TransactionContext:
        """Fetch a context and check it is in one of the expected states."""
        context = self.get(context_id)
        allowed = expected if isinstance(expected, tuple) else (expected,)
        if context.status not in allowed:
            raise InvalidContextStateError(context_id, expected, context.status)
        return context

    async def update(self, context_id: str, **fields: Any) -> TransactionContext:
        """Change non-status fields of a live context."""
        if "status" in fields:
            raise ValueError("Use transition() to change status")
        async with self._mutex:
            context = self.get(context_id)
            if context.status.is_terminal:
                raise InvalidContextStateError(context_id, "non-terminal", context.status)
            fields["updated_at"] = self._clock()
            context = context.model_copy(update=fields)
            self._contexts[context_id] = context
        return context

    async def transition(
        self, context_id: str, target: ContextStatus, **fields: Any
    ) -> TransactionContext:
        """
        Move a context to ``target`` if the transition table allows it.

        Raises:
            InvalidContextStateError: For any transition not in the table
        """
        async with self._mutex:
            context = self.get(context_id)
            allowed = ALLOWED_TRANSITIONS[context.kind].get(context.status, frozenset())
            if target not in allowed:
                expected = tuple(
                    status
                    for status, targets in ALLOWED_TRANSITIONS[context.kind].items()
                    if target in targets
                )
                raise InvalidContextStateError(context_id, expected, context.status)
            fields.update(status=target, updated_at=self._clock())
            updated = context.model_copy(update=fields)
            self._contexts[context_id] = updated

        logger.info(
            f"Context {context_id}: {context.status.value} -> {target.value}"
            + (f" ({updated.error})" if target == ContextStatus.FAILED and updated.error else "")
        )
        return updated

    async def prune_terminal(self, max_age: float = CONTEXT_RETENTION_SECONDS) -> int:
        """Drop completed or failed contexts last updated more than ``max_age`` ago."""
        cutoff = self._clock() - max_age
        async with self._mutex:
            expired = [
                cid
                for cid, ctx in self._contexts.items()
                if ctx.status.is_terminal and ctx.updated_at < cutoff
            ]
            for cid in expired:
                del self._contexts[cid]
                lock = self._context_locks.get(cid)
                if lock is not None and not lock.locked():
                    del self._context_locks[cid]
        if expired:
            logger.info(f"Pruned {len(expired)} expired context(s)")
        return len(expired)
