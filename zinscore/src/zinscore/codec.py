"""
Binary codec for Zcash v4 (Sapling, overwintered) transparent transactions.

Wire layout::

    header (u32, version | overwintered flag)
    nVersionGroupId (u32)
    vin  (varint count, then prevout ‖ scriptSig ‖ nSequence)
    vout (varint count, then value ‖ scriptPubKey)
    nLockTime (u32)
    nExpiryHeight (u32)
    valueBalance (i64, always zero)
    nShieldedSpend, nShieldedOutput, nJoinSplit (varints, always zero)
"""

from __future__ import annotations

import hashlib
import struct
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from zinscore.constants import (
    DEFAULT_SEQUENCE,
    MAX_SCRIPT_SIZE,
    OVERWINTERED_FLAG,
    SAPLING_VERSION_GROUP_ID,
    TX_VERSION,
)
from zinscore.errors import CodecError
from zinscore.models import Outpoint

MAX_UINT32 = 0xFFFFFFFF
MAX_UINT64 = 0xFFFFFFFFFFFFFFFF
MAX_MONEY = 21_000_000 * 100_000_000


class TxKind(str, Enum):
    """Which signing phase a skeleton belongs to."""

    COMMIT = "commit"
    REVEAL = "reveal"
    SPLIT = "split"


@dataclass(frozen=True)
class TxInput:
    """Input of a transaction skeleton, with the data needed for signing."""

    outpoint: Outpoint
    value: int
    script_code: bytes
    sequence: int = DEFAULT_SEQUENCE


@dataclass(frozen=True)
class TxOutput:
    value: int
    script_pubkey: bytes


@dataclass(frozen=True)
class WireInput:
    """Input as it appears on the wire."""

    outpoint: Outpoint
    script_sig: bytes = b""
    sequence: int = DEFAULT_SEQUENCE


@dataclass(frozen=True)
class WireTransaction:
    """A decoded transaction. Encoding and decoding round-trip exactly."""

    inputs: tuple[WireInput, ...]
    outputs: tuple[TxOutput, ...]
    version: int = TX_VERSION
    version_group_id: int = SAPLING_VERSION_GROUP_ID
    lock_time: int = 0
    expiry_height: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))


@dataclass(frozen=True)
class TransactionSkeleton:
    """
    Unsigned transaction plus the per-input signing context.

    Frozen: a digest taken from a skeleton stays valid for as long as the
    skeleton exists. Build a new skeleton instead of mutating one.
    """

    kind: TxKind
    epoch_id: int
    inputs: tuple[TxInput, ...]
    outputs: tuple[TxOutput, ...]
    version: int = TX_VERSION
    version_group_id: int = SAPLING_VERSION_GROUP_ID
    lock_time: int = 0
    expiry_height: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(self.inputs))
        object.__setattr__(self, "outputs", tuple(self.outputs))
        if not 0 <= self.epoch_id <= MAX_UINT32:
            raise CodecError(f"Invalid consensus branch id: {self.epoch_id}")

    @property
    def total_input_value(self) -> int:
        return sum(i.value for i in self.inputs)

    @property
    def total_output_value(self) -> int:
        return sum(o.value for o in self.outputs)

    @property
    def fee(self) -> int:
        return self.total_input_value - self.total_output_value

    def to_wire(self, script_sigs: Sequence[bytes] | None = None) -> WireTransaction:
        if script_sigs is None:
            script_sigs = [b""] * len(self.inputs)
        if len(script_sigs) != len(self.inputs):
            raise CodecError(
                f"Expected {len(self.inputs)} scriptSigs, got {len(script_sigs)}"
            )
        return WireTransaction(
            inputs=tuple(
                WireInput(outpoint=i.outpoint, script_sig=bytes(sig), sequence=i.sequence)
                for i, sig in zip(self.inputs, script_sigs)
            ),
            outputs=self.outputs,
            version=self.version,
            version_group_id=self.version_group_id,
            lock_time=self.lock_time,
            expiry_height=self.expiry_height,
        )


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def encode_varint(value: int) -> bytes:
    """Encode a compact size integer (1, 3 or 5 bytes)."""
    if value < 0:
        raise CodecError(f"Cannot encode negative varint: {value}")
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + struct.pack("<H", value)
    if value <= MAX_UINT32:
        return b"\xfe" + struct.pack("<I", value)
    raise CodecError(f"Varint too large: {value}")


def decode_varint(data: bytes, offset: int) -> tuple[int, int]:
    """Decode a compact size integer. Returns (value, new_offset)."""
    first = _take(data, offset, 1)[0]
    offset += 1
    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        value = struct.unpack("<H", _take(data, offset, 2))[0]
        if value < 0xFD:
            raise CodecError(f"Non-canonical varint at offset {offset - 1}")
        return value, offset + 2
    if first == 0xFE:
        value = struct.unpack("<I", _take(data, offset, 4))[0]
        if value <= 0xFFFF:
            raise CodecError(f"Non-canonical varint at offset {offset - 1}")
        return value, offset + 4
    raise CodecError(f"Unsupported 9-byte varint at offset {offset - 1}")


def encode_uint32_le(value: int) -> bytes:
    if not 0 <= value <= MAX_UINT32:
        raise CodecError(f"Value out of uint32 range: {value}")
    return struct.pack("<I", value)


def encode_uint64_le(value: int) -> bytes:
    if not 0 <= value <= MAX_UINT64:
        raise CodecError(f"Value out of uint64 range: {value}")
    return struct.pack("<Q", value)


def encode_int64_le(value: int) -> bytes:
    if not -(2**63) <= value < 2**63:
        raise CodecError(f"Value out of int64 range: {value}")
    return struct.pack("<q", value)


def serialize_outpoint(outpoint: Outpoint) -> bytes:
    """Serialize an outpoint. The txid is stored byte-reversed."""
    return bytes.fromhex(outpoint.txid)[::-1] + encode_uint32_le(outpoint.vout)


def serialize_script(script: bytes) -> bytes:
    if len(script) > MAX_SCRIPT_SIZE:
        raise CodecError(f"Script too large: {len(script)} > {MAX_SCRIPT_SIZE} bytes")
    return encode_varint(len(script)) + script


def serialize_output(output: TxOutput) -> bytes:
    if not 0 <= output.value <= MAX_MONEY:
        raise CodecError(f"Output value out of range: {output.value}")
    return encode_uint64_le(output.value) + serialize_script(output.script_pubkey)


def encode_header(version: int) -> bytes:
    if not 0 < version < OVERWINTERED_FLAG:
        raise CodecError(f"Invalid transaction version: {version}")
    return encode_uint32_le(version | OVERWINTERED_FLAG)


def encode_transaction(tx: WireTransaction) -> bytes:
    """Encode a wire transaction to consensus bytes."""
    if not tx.inputs:
        raise CodecError("Transaction has no inputs")
    if not tx.outputs:
        raise CodecError("Transaction has no outputs")

    parts = [
        encode_header(tx.version),
        encode_uint32_le(tx.version_group_id),
        encode_varint(len(tx.inputs)),
    ]
    for inp in tx.inputs:
        parts.append(serialize_outpoint(inp.outpoint))
        parts.append(serialize_script(inp.script_sig))
        parts.append(encode_uint32_le(inp.sequence))

    parts.append(encode_varint(len(tx.outputs)))
    parts.extend(serialize_output(out) for out in tx.outputs)

    parts.append(encode_uint32_le(tx.lock_time))
    parts.append(encode_uint32_le(tx.expiry_height))
    # valueBalance, nShieldedSpend, nShieldedOutput, nJoinSplit
    parts.append(encode_int64_le(0))
    parts.append(b"\x00\x00\x00")
    return b"".join(parts)


def serialize_transaction(
    skeleton: TransactionSkeleton, script_sigs: Sequence[bytes] | None = None
) -> bytes:
    """Serialize a skeleton with the given per-input scriptSigs."""
    return encode_transaction(skeleton.to_wire(script_sigs))


def decode_transaction(raw: bytes) -> WireTransaction:
    """Decode consensus bytes into a WireTransaction."""
    offset = 0
    header = struct.unpack("<I", _take(raw, offset, 4))[0]
    offset += 4
    if not header & OVERWINTERED_FLAG:
        raise CodecError("Transaction is not overwintered")
    version = header & ~OVERWINTERED_FLAG
    if version != TX_VERSION:
        raise CodecError(f"Unsupported transaction version: {version}")

    version_group_id = struct.unpack("<I", _take(raw, offset, 4))[0]
    offset += 4

    input_count, offset = decode_varint(raw, offset)
    inputs: list[WireInput] = []
    for _ in range(input_count):
        txid_le = _take(raw, offset, 32)
        offset += 32
        vout = struct.unpack("<I", _take(raw, offset, 4))[0]
        offset += 4
        script_len, offset = decode_varint(raw, offset)
        script_sig = _take(raw, offset, script_len)
        offset += script_len
        sequence = struct.unpack("<I", _take(raw, offset, 4))[0]
        offset += 4
        inputs.append(
            WireInput(
                outpoint=Outpoint(txid=txid_le[::-1].hex(), vout=vout),
                script_sig=script_sig,
                sequence=sequence,
            )
        )

    output_count, offset = decode_varint(raw, offset)
    outputs: list[TxOutput] = []
    for _ in range(output_count):
        value = struct.unpack("<Q", _take(raw, offset, 8))[0]
        offset += 8
        script_len, offset = decode_varint(raw, offset)
        script = _take(raw, offset, script_len)
        offset += script_len
        outputs.append(TxOutput(value=value, script_pubkey=script))

    lock_time = struct.unpack("<I", _take(raw, offset, 4))[0]
    offset += 4
    expiry_height = struct.unpack("<I", _take(raw, offset, 4))[0]
    offset += 4
    value_balance = struct.unpack("<q", _take(raw, offset, 8))[0]
    offset += 8
    if value_balance != 0:
        raise CodecError("Shielded value balance is not supported")
    for name in ("shielded spends", "shielded outputs", "JoinSplits"):
        count, offset = decode_varint(raw, offset)
        if count:
            raise CodecError(f"Transactions with {name} are not supported")

    if offset != len(raw):
        raise CodecError(f"{len(raw) - offset} trailing bytes after transaction")

    return WireTransaction(
        inputs=tuple(inputs),
        outputs=tuple(outputs),
        version=version,
        version_group_id=version_group_id,
        lock_time=lock_time,
        expiry_height=expiry_height,
    )


def transaction_id(raw: bytes) -> str:
    """Compute the txid (double SHA-256, displayed byte-reversed)."""
    return hash256(raw)[::-1].hex()


def _take(data: bytes, offset: int, length: int) -> bytes:
    if length < 0:
        raise CodecError(f"Negative length {length} at offset {offset}")
    end = offset + length
    if end > len(data):
        raise CodecError(
            f"Truncated transaction: need {length} bytes at offset {offset}, "
            f"have {max(len(data) - offset, 0)}"
        )
    return bytes(data[offset:end])
