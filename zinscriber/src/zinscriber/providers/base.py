"""
Capability interfaces for the external services the engine depends on.

Each capability is its own interface so a single backend can implement
several of them, and fallback chains can be built per capability.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from zinscore.models import FundingInput, Outpoint

if TYPE_CHECKING:
    from zinscriber.records import InscriptionRecord


class Provider:
    """Common base: a display name and an optional resource to release."""

    name: str = "provider"

    async def close(self) -> None:
        """Close provider connection"""
        pass


class UtxoIndex(Provider, ABC):
    @abstractmethod
    async def fetch_spendable_inputs(self, address: str) -> list[FundingInput]:
        """
        Spendable outputs of an address.

        An empty list is a valid answer; only an unreachable provider raises.
        """


class InscriptionIndex(Provider, ABC):
    @abstractmethod
    async def is_output_inscribed(self, outpoint: Outpoint) -> bool:
        """Whether the output carries an inscription"""


class ChainInfo(Provider, ABC):
    @abstractmethod
    async def get_current_epoch_id(self) -> int:
        """Consensus branch id that the next block will be validated under"""


class Broadcaster(Provider, ABC):
    @abstractmethod
    async def broadcast(self, raw_tx_hex: str) -> str:
        """Submit a raw transaction, returns txid"""


class InscriptionRecorder(ABC):
    @abstractmethod
    async def record(self, record: InscriptionRecord) -> None:
        """Persist metadata of a completed inscription"""
