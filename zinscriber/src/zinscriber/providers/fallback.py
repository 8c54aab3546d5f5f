"""
Ordered fallback chains over providers of one capability.

Each provider is tried in turn under a per-call timeout. Failures are kept
as ``ProviderFailure`` entries and attached to the final error when every
provider fails.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from loguru import logger

from zinscore.errors import (
    BroadcastRejectedError,
    ProviderFailure,
    ProviderUnavailableError,
)
from zinscore.models import FundingInput, Outpoint
from zinscriber.providers.base import (
    Broadcaster,
    ChainInfo,
    InscriptionIndex,
    Provider,
    UtxoIndex,
)

P = TypeVar("P", bound=Provider)
T = TypeVar("T")

URL_RE = re.compile(r"https?://\S+")

# (substrings to look for, message shown to the caller)
REJECTION_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("scriptsig-not-pushonly",),
        "Transaction rejected: scriptSig is not push-only",
    ),
    (
        ("unpaid action", "insufficient fee", "min relay fee not met"),
        "Transaction rejected: fee too low",
    ),
    (
        ("missing inputs", "bad-txns-inputs-missingorspent"),
        "Transaction rejected: inputs missing or already spent",
    ),
)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timed out"
    return str(exc) or type(exc).__name__


async def call_in_order(
    operation: str,
    providers: Sequence[P],
    call: Callable[[P], Awaitable[T]],
    timeout: float,
) -> tuple[T, P]:
    """
    Run ``call`` against each provider until one succeeds.

    Returns:
        (result, the provider that produced it)

    Raises:
        ProviderUnavailableError: When every provider failed
    """
    failures: list[ProviderFailure] = []
    for provider in providers:
        try:
            result = await asyncio.wait_for(call(provider), timeout=timeout)
        except Exception as e:
            message = _describe(e)
            logger.warning(f"{operation} failed on {provider.name}: {message}")
            failures.append(ProviderFailure(provider=provider.name, message=message))
            continue
        return result, provider
    raise ProviderUnavailableError(operation, failures)


def sanitize_rejection(failures: Sequence[ProviderFailure], provider_names: Sequence[str]) -> str:
    """
    Turn raw provider errors into a provider-neutral reason.

    Known rejection causes map to a fixed hint; otherwise the first error is
    passed through with URLs and provider names removed.
    """
    combined = " | ".join(f.message for f in failures).lower()
    for needles, hint in REJECTION_HINTS:
        if any(needle in combined for needle in needles):
            return hint

    if not failures:
        return "Broadcast failed: no broadcaster configured"
    reason = URL_RE.sub("", failures[0].message)
    for name in provider_names:
        reason = re.sub(re.escape(name), "", reason, flags=re.IGNORECASE)
    reason = re.sub(r"\s+", " ", reason).strip(" :-")
    return f"Broadcast failed: {reason or 'unknown error'}"


class FallbackUtxoIndex(UtxoIndex):
    name = "utxo-fallback"

    def __init__(self, providers: Sequence[UtxoIndex], timeout: float = 8.0):
        self.providers = list(providers)
        self.timeout = timeout

    async def fetch_spendable_inputs(self, address: str) -> list[FundingInput]:
        result, provider = await call_in_order(
            "fetch_spendable_inputs",
            self.providers,
            lambda p: p.fetch_spendable_inputs(address),
            self.timeout,
        )
        logger.debug(f"{len(result)} spendable inputs for {address} via {provider.name}")
        return result

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()


class FallbackInscriptionIndex(InscriptionIndex):
    """
    Inscription lookups, failing closed.

    When no provider can answer, the output is reported as inscribed so it is
    never spent by accident.
    """

    name = "inscription-fallback"

    def __init__(self, providers: Sequence[InscriptionIndex], timeout: float = 8.0):
        self.providers = list(providers)
        self.timeout = timeout

    async def is_output_inscribed(self, outpoint: Outpoint) -> bool:
        try:
            result, _ = await call_in_order(
                "is_output_inscribed",
                self.providers,
                lambda p: p.is_output_inscribed(outpoint),
                self.timeout,
            )
        except ProviderUnavailableError as e:
            logger.error(f"Cannot verify {outpoint}, treating as inscribed: {e}")
            return True
        return result

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()


class FallbackChainInfo(ChainInfo):
    name = "chain-info-fallback"

    def __init__(self, providers: Sequence[ChainInfo], timeout: float = 8.0):
        self.providers = list(providers)
        self.timeout = timeout

    async def get_current_epoch_id(self) -> int:
        result, _ = await call_in_order(
            "get_current_epoch_id",
            self.providers,
            lambda p: p.get_current_epoch_id(),
            self.timeout,
        )
        return result

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()


class FallbackBroadcaster(Broadcaster):
    """Broadcast through the first provider that accepts the transaction."""

    name = "broadcast-fallback"

    def __init__(self, providers: Sequence[Broadcaster], timeout: float = 8.0):
        self.providers = list(providers)
        self.timeout = timeout

    async def broadcast(self, raw_tx_hex: str) -> str:
        try:
            txid, provider = await call_in_order(
                "broadcast",
                self.providers,
                lambda p: p.broadcast(raw_tx_hex),
                self.timeout,
            )
        except ProviderUnavailableError as e:
            for failure in e.failures:
                logger.error(f"Broadcast error from {failure}")
            reason = sanitize_rejection(e.failures, [p.name for p in self.providers])
            raise BroadcastRejectedError(reason, e.failures) from e
        logger.info(f"Broadcast accepted by {provider.name}: {txid}")
        return txid

    async def close(self) -> None:
        for provider in self.providers:
            await provider.close()
