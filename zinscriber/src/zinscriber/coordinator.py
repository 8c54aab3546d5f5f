"""
Funding input selection and reservation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence

from loguru import logger

from zinscore.constants import STALE_LOCK_SECONDS
from zinscore.errors import InputUnavailableError, LockConflictError
from zinscore.models import FundingInput, Outpoint
from zinscriber.locks import Lock, LockTable
from zinscriber.providers.base import InscriptionIndex, UtxoIndex

# Maps an input count to the total value those inputs must cover
RequiredValue = Callable[[int], int]


def choose_inputs(
    candidates: Sequence[FundingInput], required_for: RequiredValue
) -> list[FundingInput] | None:
    """
    Pick inputs covering the requirement.

    Prefers the smallest single input that is large enough; otherwise adds
    inputs largest first until the total covers the requirement for that
    many inputs.
    """
    single_need = required_for(1)
    for candidate in sorted(candidates, key=lambda c: c.value):
        if candidate.value >= single_need:
            return [candidate]

    chosen: list[FundingInput] = []
    total = 0
    for candidate in sorted(candidates, key=lambda c: c.value, reverse=True):
        chosen.append(candidate)
        total += candidate.value
        if total >= required_for(len(chosen)):
            return chosen
    return None


class UtxoCoordinator:
    def __init__(
        self,
        utxo_index: UtxoIndex,
        inscription_index: InscriptionIndex,
        locks: LockTable | None = None,
        stale_lock_seconds: float = STALE_LOCK_SECONDS,
    ):
        self.utxo_index = utxo_index
        self.inscription_index = inscription_index
        self.locks = locks if locks is not None else LockTable()
        self.stale_lock_seconds = stale_lock_seconds

    async def _is_inscribed(self, outpoint: Outpoint) -> bool:
        try:
            return await self.inscription_index.is_output_inscribed(outpoint)
        except Exception as e:
            logger.warning(f"Inscription check failed for {outpoint}, excluding it: {e}")
            return True

    async def eligible_inputs(
        self, address: str, attempt_id: str | None = None
    ) -> list[FundingInput]:
        """Spendable inputs that are neither locked by another attempt nor inscribed."""
        inputs = await self.utxo_index.fetch_spendable_inputs(address)

        unlocked = []
        for funding in inputs:
            lock = self.locks.holder(funding.outpoint)
            if lock is not None and lock.attempt_id != attempt_id:
                logger.debug(f"Skipping {funding.outpoint}: locked by attempt {lock.attempt_id}")
                continue
            unlocked.append(funding)

        flags = await asyncio.gather(*(self._is_inscribed(f.outpoint) for f in unlocked))
        eligible = [f for f, inscribed in zip(unlocked, flags) if not inscribed]
        if len(eligible) != len(unlocked):
            excluded = len(unlocked) - len(eligible)
            logger.info(f"Excluded {excluded} inscribed input(s) for {address}")
        return eligible

    async def lock_inputs(
        self, inputs: Iterable[FundingInput], owner: str, attempt_id: str
    ) -> list[Lock]:
        return await self.locks.acquire(
            [f.outpoint for f in inputs], owner, attempt_id, exclusive=True
        )

    async def select_funding(
        self,
        address: str,
        required_for: RequiredValue,
        owner: str,
        attempt_id: str,
    ) -> list[FundingInput]:
        """
        Select and lock funding inputs for one attempt.

        Raises:
            InputUnavailableError: When no eligible set covers the requirement
        """
        candidates = await self.eligible_inputs(address, attempt_id)

        while True:
            chosen = choose_inputs(candidates, required_for)
            if chosen is None:
                required = required_for(max(1, len(candidates)))
                available = sum(c.value for c in candidates)
                raise InputUnavailableError(
                    f"No eligible funding for {address}: need {required} zats, "
                    f"{len(candidates)} eligible input(s) totalling {available}",
                    required_value=required,
                    available_count=len(candidates),
                    available_value=available,
                )
            try:
                await self.lock_inputs(chosen, owner, attempt_id)
            except LockConflictError as e:
                logger.info(f"Lost lock race on {e.outpoint}, retrying selection")
                candidates = [c for c in candidates if c.outpoint != e.outpoint]
                continue

            logger.info(
                f"Selected {len(chosen)} input(s) totalling "
                f"{sum(c.value for c in chosen)} zats for attempt {attempt_id}"
            )
            return chosen

    async def release(self, attempt_id: str) -> None:
        """Release an attempt's locks. Errors are logged, never raised."""
        try:
            await self.locks.release_attempt(attempt_id)
        except Exception as e:
            logger.error(f"Failed to release locks of attempt {attempt_id}: {e}")

    async def sweep_stale(self) -> int:
        stale = await self.locks.prune_stale(self.stale_lock_seconds)
        return len(stale)
