"""
Key, hash and transparent address helpers.
"""

from __future__ import annotations

import hashlib
from enum import Enum

import base58
from coincurve import PrivateKey, PublicKey

from zinscore.models import NetworkType


class AddressError(ValueError):
    pass


class AddressKind(str, Enum):
    P2PKH = "p2pkh"
    P2SH = "p2sh"


# Two-byte base58check version prefixes for transparent addresses
ADDRESS_PREFIXES: dict[NetworkType, dict[AddressKind, bytes]] = {
    NetworkType.MAINNET: {
        AddressKind.P2PKH: bytes([0x1C, 0xB8]),  # t1...
        AddressKind.P2SH: bytes([0x1C, 0xBD]),  # t3...
    },
    NetworkType.TESTNET: {
        AddressKind.P2PKH: bytes([0x1D, 0x25]),  # tm...
        AddressKind.P2SH: bytes([0x1C, 0xBA]),  # t2...
    },
    NetworkType.REGTEST: {
        AddressKind.P2PKH: bytes([0x1D, 0x25]),
        AddressKind.P2SH: bytes([0x1C, 0xBA]),
    },
}

WIF_PREFIXES = {0x80: NetworkType.MAINNET, 0xEF: NetworkType.TESTNET}


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD-160 of SHA-256, the standard 160-bit script and key digest."""
    return hashlib.new("ripemd160", sha256(data)).digest()


def decode_address(address: str) -> tuple[AddressKind, bytes, NetworkType]:
    """
    Decode a transparent address.

    Returns:
        (kind, 20-byte hash, network)

    Raises:
        AddressError: On bad checksum, length or unknown prefix
    """
    try:
        decoded = base58.b58decode_check(address)
    except ValueError as e:
        raise AddressError(f"Invalid address {address!r}: {e}") from e

    if len(decoded) != 22:
        raise AddressError(f"Invalid address length for {address!r}: {len(decoded)}")

    prefix, payload = decoded[:2], decoded[2:]
    for network, kinds in ADDRESS_PREFIXES.items():
        for kind, kind_prefix in kinds.items():
            if prefix == kind_prefix:
                return kind, payload, network
    raise AddressError(f"Unknown address prefix {prefix.hex()} for {address!r}")


def encode_address(
    kind: AddressKind, payload: bytes, network: NetworkType = NetworkType.MAINNET
) -> str:
    if len(payload) != 20:
        raise AddressError(f"Address payload must be 20 bytes, got {len(payload)}")
    prefix = ADDRESS_PREFIXES[network][kind]
    return base58.b58encode_check(prefix + payload).decode("ascii")


def pubkey_to_address(pubkey: bytes, network: NetworkType = NetworkType.MAINNET) -> str:
    return encode_address(AddressKind.P2PKH, hash160(pubkey), network)


def load_public_key(pubkey: bytes | str) -> bytes:
    """Validate a secp256k1 public key (bytes or hex) and return its bytes unchanged."""
    try:
        raw = bytes.fromhex(pubkey) if isinstance(pubkey, str) else bytes(pubkey)
        PublicKey(raw)
    except ValueError as e:
        raise ValueError(f"Invalid public key: {e}") from e
    return raw


def decode_wif(wif: str) -> tuple[PrivateKey, bool, NetworkType]:
    """
    Decode a WIF private key.

    Returns:
        (private key, compressed flag, network)
    """
    try:
        decoded = base58.b58decode_check(wif)
    except ValueError as e:
        raise ValueError(f"Invalid WIF: {e}") from e

    network = WIF_PREFIXES.get(decoded[0])
    if network is None:
        raise ValueError(f"Unknown WIF prefix: {decoded[0]:#x}")

    if len(decoded) == 34 and decoded[-1] == 0x01:
        return PrivateKey(decoded[1:33]), True, network
    if len(decoded) == 33:
        return PrivateKey(decoded[1:33]), False, network
    raise ValueError(f"Invalid WIF length: {len(decoded)}")


def encode_wif(
    private_key: PrivateKey, network: NetworkType = NetworkType.MAINNET, compressed: bool = True
) -> str:
    prefix = 0x80 if network == NetworkType.MAINNET else 0xEF
    payload = bytes([prefix]) + private_key.secret + (b"\x01" if compressed else b"")
    return base58.b58encode_check(payload).decode("ascii")
