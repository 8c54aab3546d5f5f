"""
Signature hashing (ZIP-243) and ECDSA signature encoding.

The digest ties a signature to one consensus branch: the final BLAKE2b
personalization is ``ZcashSigHash`` followed by the little-endian branch id
carried on the skeleton. A digest built with a stale branch id verifies
locally but is rejected by the network.
"""

from __future__ import annotations

import hashlib
import struct

from coincurve import PrivateKey, PublicKey

from zinscore.codec import (
    TransactionSkeleton,
    encode_header,
    encode_int64_le,
    encode_uint32_le,
    encode_uint64_le,
    serialize_outpoint,
    serialize_output,
    serialize_script,
)
from zinscore.constants import SIGHASH_ALL
from zinscore.errors import SignatureError

# secp256k1 group order
CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
HALF_CURVE_ORDER = CURVE_ORDER // 2

PREVOUTS_PERSONALIZATION = b"ZcashPrevoutHash"
SEQUENCE_PERSONALIZATION = b"ZcashSequencHash"
OUTPUTS_PERSONALIZATION = b"ZcashOutputsHash"
SIGHASH_PERSONALIZATION_PREFIX = b"ZcashSigHash"

ZERO_HASH = b"\x00" * 32


def blake2b_256(data: bytes, person: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32, person=person).digest()


def hash_prevouts(skeleton: TransactionSkeleton) -> bytes:
    data = b"".join(serialize_outpoint(i.outpoint) for i in skeleton.inputs)
    return blake2b_256(data, PREVOUTS_PERSONALIZATION)


def hash_sequence(skeleton: TransactionSkeleton) -> bytes:
    data = b"".join(encode_uint32_le(i.sequence) for i in skeleton.inputs)
    return blake2b_256(data, SEQUENCE_PERSONALIZATION)


def hash_outputs(skeleton: TransactionSkeleton) -> bytes:
    data = b"".join(serialize_output(o) for o in skeleton.outputs)
    return blake2b_256(data, OUTPUTS_PERSONALIZATION)


def sighash_personalization(epoch_id: int) -> bytes:
    return SIGHASH_PERSONALIZATION_PREFIX + struct.pack("<I", epoch_id)


def signature_digest(
    skeleton: TransactionSkeleton, input_index: int, hash_type: int = SIGHASH_ALL
) -> bytes:
    """
    Compute the 32-byte digest to sign for one transparent input.

    Only SIGHASH_ALL is supported; every inscription phase commits to all
    inputs and outputs.

    Args:
        skeleton: Unsigned transaction with per-input value and script code
        input_index: Index of the input being signed
        hash_type: Signature hash type

    Returns:
        The digest as raw bytes
    """
    if hash_type != SIGHASH_ALL:
        raise SignatureError(f"Unsupported sighash type: {hash_type:#x}")
    if not 0 <= input_index < len(skeleton.inputs):
        raise SignatureError(
            f"Input index {input_index} out of range for {len(skeleton.inputs)} inputs"
        )

    txin = skeleton.inputs[input_index]
    preimage = b"".join(
        [
            encode_header(skeleton.version),
            encode_uint32_le(skeleton.version_group_id),
            hash_prevouts(skeleton),
            hash_sequence(skeleton),
            hash_outputs(skeleton),
            ZERO_HASH,  # JoinSplits
            ZERO_HASH,  # shielded spends
            ZERO_HASH,  # shielded outputs
            encode_uint32_le(skeleton.lock_time),
            encode_uint32_le(skeleton.expiry_height),
            encode_int64_le(0),  # valueBalance
            encode_uint32_le(hash_type),
            serialize_outpoint(txin.outpoint),
            serialize_script(txin.script_code),
            encode_uint64_le(txin.value),
            encode_uint32_le(txin.sequence),
        ]
    )
    return blake2b_256(preimage, sighash_personalization(skeleton.epoch_id))


def signature_digests(skeleton: TransactionSkeleton) -> list[bytes]:
    return [signature_digest(skeleton, i) for i in range(len(skeleton.inputs))]


def _split_compact(sig: bytes) -> tuple[int, int]:
    if len(sig) != 64:
        raise SignatureError(f"Compact signature must be 64 bytes, got {len(sig)}")
    r = int.from_bytes(sig[:32], "big")
    s = int.from_bytes(sig[32:], "big")
    if not 0 < r < CURVE_ORDER or not 0 < s < CURVE_ORDER:
        raise SignatureError("Signature component out of range")
    return r, s


def _der_integer(value: int) -> bytes:
    """Shortest big-endian two's-complement form of a positive integer."""
    raw = value.to_bytes((value.bit_length() + 7) // 8 or 1, "big")
    if raw[0] & 0x80:
        raw = b"\x00" + raw
    return b"\x02" + bytes([len(raw)]) + raw


def encode_der_signature(sig: bytes, hash_type: int = SIGHASH_ALL) -> bytes:
    """
    Encode a 64-byte r||s signature as DER plus a trailing hash type byte.

    High S values are replaced with ``order - s``.
    """
    r, s = _split_compact(sig)
    if s > HALF_CURVE_ORDER:
        s = CURVE_ORDER - s
    body = _der_integer(r) + _der_integer(s)
    return b"\x30" + bytes([len(body)]) + body + bytes([hash_type])


def _read_der_integer(data: bytes, offset: int) -> tuple[int, int]:
    if offset + 2 > len(data) or data[offset] != 0x02:
        raise SignatureError("Expected DER integer")
    length = data[offset + 1]
    start = offset + 2
    end = start + length
    if length == 0 or end > len(data):
        raise SignatureError("Invalid DER integer length")
    raw = data[start:end]
    if raw[0] & 0x80:
        raise SignatureError("Negative DER integer")
    if length > 1 and raw[0] == 0 and not raw[1] & 0x80:
        raise SignatureError("Non-minimal DER integer")
    return int.from_bytes(raw, "big"), end


def decode_der_signature(data: bytes) -> tuple[bytes, int | None]:
    """
    Decode a DER signature, with or without a trailing hash type byte.

    Returns:
        (64-byte r||s signature, hash type or None)
    """
    if len(data) < 8 or data[0] != 0x30:
        raise SignatureError("Not a DER signature")
    body_len = data[1]
    if 2 + body_len > len(data):
        raise SignatureError("Truncated DER signature")
    trailer = data[2 + body_len :]
    if len(trailer) > 1:
        raise SignatureError(f"{len(trailer)} unexpected bytes after DER signature")

    body = data[2 : 2 + body_len]
    r, offset = _read_der_integer(body, 0)
    s, offset = _read_der_integer(body, offset)
    if offset != len(body):
        raise SignatureError("Unexpected data inside DER signature")
    if not 0 < r < CURVE_ORDER or not 0 < s < CURVE_ORDER:
        raise SignatureError("Signature component out of range")

    hash_type = trailer[0] if trailer else None
    return r.to_bytes(32, "big") + s.to_bytes(32, "big"), hash_type


def normalize_signature(sig: bytes | str) -> bytes:
    """
    Normalize a client signature to a low-S 64-byte r||s value.

    Accepts raw compact signatures or DER (optionally with hash type), as
    bytes or hex.
    """
    if isinstance(sig, str):
        try:
            sig = bytes.fromhex(sig.strip().removeprefix("0x"))
        except ValueError as e:
            raise SignatureError(f"Signature is not valid hex: {e}") from e

    if len(sig) == 64:
        r, s = _split_compact(sig)
    elif sig[:1] == b"\x30":
        compact, _ = decode_der_signature(sig)
        r, s = _split_compact(compact)
    else:
        raise SignatureError(f"Unrecognized signature encoding ({len(sig)} bytes)")

    if s > HALF_CURVE_ORDER:
        s = CURVE_ORDER - s
    return r.to_bytes(32, "big") + s.to_bytes(32, "big")


def sign_digest(private_key: PrivateKey, digest: bytes) -> bytes:
    """Sign a precomputed digest. Returns a low-S 64-byte r||s signature."""
    if len(digest) != 32:
        raise SignatureError(f"Digest must be 32 bytes, got {len(digest)}")
    der = private_key.sign(digest, hasher=None)
    compact, _ = decode_der_signature(der)
    return normalize_signature(compact)


def verify_digest_signature(pubkey: bytes, digest: bytes, sig: bytes) -> bool:
    """Check a 64-byte r||s signature over a digest."""
    try:
        compact = normalize_signature(sig)
        der = encode_der_signature(compact)[:-1]
        return bool(PublicKey(pubkey).verify(der, digest, hasher=None))
    except (SignatureError, ValueError):
        return False
