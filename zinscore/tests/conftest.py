"""
Shared fixtures for zinscore tests.
"""

from __future__ import annotations

import pytest
from coincurve import PrivateKey

from zinscore.codec import TransactionSkeleton, TxInput, TxKind, TxOutput
from zinscore.models import Outpoint
from zinscore.script import p2pkh_script

NU6_BRANCH_ID = 0xC8E71055

# Reveal transaction of a live Zerdinals text inscription ("zatoshi.zec")
REVEAL_TX_HEX = (
    "0400008085202f890182d2d9ac699b9c6c14274c9466f943422f9ee014ec9b0a8c67c26b2f"
    "9599c715000000009003"
    "6f7264510a746578742f706c61696e000b7a61746f7368692e7a656348304502210"
    "0e857a151a664b2c508ce3277b685e40517bb4c4178f054a075694ef61e56cd180220525812"
    "c00331a13359adcc626ed50f050cfed468c5a13bd41c3caf5c3ae082cb01292102ae86217e"
    "8e275ba60cedbcace0d7a9a4029b5b3df9788aed70a579f5f8215362ad757575757551ffff"
    "ffff0110270000000000001976a914a1748be68ef48742bb38bc46957f9c512c3f15e088ac"
    "00000000000000000000000000000000000000"
)

REVEAL_SCRIPT_SIG_HEX = (
    "036f7264510a746578742f706c61696e000b7a61746f7368692e7a6563483045022100e857"
    "a151a664b2c508ce3277b685e40517bb4c4178f054a075694ef61e56cd180220525812c003"
    "31a13359adcc626ed50f050cfed468c5a13bd41c3caf5c3ae082cb01292102ae86217e8e27"
    "5ba60cedbcace0d7a9a4029b5b3df9788aed70a579f5f8215362ad757575757551"
)

REVEAL_PUBKEY_HEX = "02ae86217e8e275ba60cedbcace0d7a9a4029b5b3df9788aed70a579f5f8215362"


@pytest.fixture
def private_key() -> PrivateKey:
    """Fixed test key (not for production use!)."""
    return PrivateKey(bytes.fromhex("11" * 32))


@pytest.fixture
def pubkey(private_key: PrivateKey) -> bytes:
    return private_key.public_key.format(compressed=True)


@pytest.fixture
def outpoint() -> Outpoint:
    return Outpoint(txid="ab" * 32, vout=1)


@pytest.fixture
def skeleton(outpoint: Outpoint) -> TransactionSkeleton:
    """Two-input, two-output commit-shaped skeleton."""
    script = p2pkh_script(bytes(range(20)))
    return TransactionSkeleton(
        kind=TxKind.COMMIT,
        epoch_id=NU6_BRANCH_ID,
        inputs=[
            TxInput(outpoint=outpoint, value=50_000, script_code=script),
            TxInput(outpoint=Outpoint(txid="cd" * 32, vout=0), value=30_000, script_code=script),
        ],
        outputs=[
            TxOutput(value=60_000, script_pubkey=b"\xa9\x14" + b"\x01" * 20 + b"\x87"),
            TxOutput(value=10_000, script_pubkey=script),
        ],
        lock_time=0,
        expiry_height=0,
    )


@pytest.fixture
def reveal_tx() -> bytes:
    return bytes.fromhex(REVEAL_TX_HEX)


@pytest.fixture
def reveal_script_sig() -> bytes:
    return bytes.fromhex(REVEAL_SCRIPT_SIG_HEX)


@pytest.fixture
def reveal_pubkey() -> bytes:
    return bytes.fromhex(REVEAL_PUBKEY_HEX)
