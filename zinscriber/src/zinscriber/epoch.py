"""
Consensus branch id cache.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from loguru import logger

from zinscore.constants import CONSENSUS_BRANCH_NAMES, EPOCH_CACHE_TTL_SECONDS
from zinscore.errors import EpochUnavailableError, ProviderFailure, ProviderUnavailableError
from zinscriber.providers.base import ChainInfo


def describe_branch(epoch_id: int) -> str:
    name = CONSENSUS_BRANCH_NAMES.get(epoch_id, "unknown")
    return f"{epoch_id:#010x} ({name})"


class EpochCache:
    """
    Caches the branch id with a TTL.

    An explicit override bypasses the source entirely, for provider outages.
    Concurrent refreshes are coalesced into one provider call.
    """

    def __init__(
        self,
        source: ChainInfo | None,
        ttl: float = EPOCH_CACHE_TTL_SECONDS,
        override: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.ttl = ttl
        self.override = override
        self._clock = clock
        self._value: int | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._value = None
        self._expires_at = 0.0

    def _cached(self) -> int | None:
        if self._value is not None and self._clock() < self._expires_at:
            return self._value
        return None

    async def get(self) -> int:
        if self.override is not None:
            return self.override

        cached = self._cached()
        if cached is not None:
            return cached

        async with self._lock:
            cached = self._cached()
            if cached is not None:
                return cached
            if self.source is None:
                raise EpochUnavailableError(
                    [ProviderFailure(provider="config", message="no chain info source")]
                )
            try:
                value = await self.source.get_current_epoch_id()
            except ProviderUnavailableError as e:
                raise EpochUnavailableError(e.failures) from e
            except Exception as e:
                raise EpochUnavailableError(
                    [ProviderFailure(provider=self.source.name, message=str(e))]
                ) from e

            self._value = value
            self._expires_at = self._clock() + self.ttl
            logger.info(f"Consensus branch id {describe_branch(value)}")
            return value
