"""
Test configuration for zinscriber tests.
"""

from __future__ import annotations

from collections.abc import Callable
from unittest.mock import AsyncMock

import pytest
from coincurve import PrivateKey

from zinscore.codec import transaction_id
from zinscore.crypto import pubkey_to_address
from zinscore.models import FundingInput, Outpoint
from zinscriber.coordinator import UtxoCoordinator
from zinscriber.epoch import EpochCache
from zinscriber.locks import LockTable
from zinscriber.providers.base import Broadcaster, InscriptionIndex, UtxoIndex
from zinscriber.records import MemoryInscriptionRecorder
from zinscriber.service import InscriptionService

NU6_BRANCH_ID = 0xC8E71055


def _echo_txid(raw_tx_hex: str) -> str:
    return transaction_id(bytes.fromhex(raw_tx_hex))


@pytest.fixture
def private_key() -> PrivateKey:
    """Fixed test key (not for production use!)."""
    return PrivateKey(bytes.fromhex("11" * 32))


@pytest.fixture
def pubkey(private_key: PrivateKey) -> bytes:
    return private_key.public_key.format(compressed=True)


@pytest.fixture
def address(pubkey: bytes) -> str:
    return pubkey_to_address(pubkey)


@pytest.fixture
def make_input(address: str) -> Callable[..., FundingInput]:
    """Factory for funding inputs with distinct outpoints."""

    def _make(value: int, tag: int = 1, vout: int = 0) -> FundingInput:
        return FundingInput(
            outpoint=Outpoint(txid=f"{tag:02x}" * 32, vout=vout),
            value=value,
            address=address,
        )

    return _make


@pytest.fixture
def utxo_index() -> AsyncMock:
    index = AsyncMock(spec=UtxoIndex)
    index.name = "mock-utxos"
    index.fetch_spendable_inputs.return_value = []
    return index


@pytest.fixture
def inscription_index() -> AsyncMock:
    index = AsyncMock(spec=InscriptionIndex)
    index.name = "mock-indexer"
    index.is_output_inscribed.return_value = False
    return index


@pytest.fixture
def broadcaster() -> AsyncMock:
    """Broadcaster that accepts everything and echoes the real txid."""
    mock = AsyncMock(spec=Broadcaster)
    mock.name = "mock-broadcaster"
    mock.broadcast.side_effect = _echo_txid
    return mock


@pytest.fixture
def lock_table() -> LockTable:
    return LockTable()


@pytest.fixture
def coordinator(
    utxo_index: AsyncMock, inscription_index: AsyncMock, lock_table: LockTable
) -> UtxoCoordinator:
    return UtxoCoordinator(utxo_index, inscription_index, locks=lock_table)


@pytest.fixture
def epoch() -> EpochCache:
    return EpochCache(None, override=NU6_BRANCH_ID)


@pytest.fixture
def recorder() -> MemoryInscriptionRecorder:
    return MemoryInscriptionRecorder()


@pytest.fixture
def service(
    coordinator: UtxoCoordinator,
    epoch: EpochCache,
    broadcaster: AsyncMock,
    recorder: MemoryInscriptionRecorder,
) -> InscriptionService:
    return InscriptionService(coordinator, epoch, broadcaster, recorder=recorder)
