"""
Script elements, the inscription envelope, and the scripts built around it.

The envelope is carried in the scriptSig that redeems a P2SH output::

    <"ord"> OP_1 <content type> OP_0 <body chunk> ... <sig> <redeem script>

and the redeem script drops every envelope element before checking the
signature::

    <pubkey> OP_CHECKSIGVERIFY OP_DROP * N OP_1

Script elements are a closed set of variants. Data that has a dedicated
literal opcode (empty, 0x01..0x10, 0x81) can only be emitted as that opcode;
``Push`` refuses it, so minimal-data violations cannot be constructed.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Union

from zinscore.constants import ENVELOPE_MARKER, MAX_SCRIPT_ELEMENT_SIZE
from zinscore.crypto import AddressKind, decode_address, hash160
from zinscore.errors import MalformedEnvelopeError, SignatureError
from zinscore.sighash import decode_der_signature

OP_0 = 0x00
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_1NEGATE = 0x4F
OP_1 = 0x51
OP_16 = 0x60
OP_DROP = 0x75
OP_DUP = 0x76
OP_EQUAL = 0x87
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC
OP_CHECKSIGVERIFY = 0xAD

MAX_DIRECT_PUSH = 0x4B


def _literal_value(data: bytes) -> int | None:
    if not data:
        return 0
    if len(data) == 1 and data[0] <= 16:
        return data[0]
    return None


@dataclass(frozen=True)
class Push:
    """A data push using the smallest push opcode for its length."""

    data: bytes

    def __post_init__(self) -> None:
        if _literal_value(self.data) is not None or self.data == b"\x81":
            raise ValueError(
                f"Data {self.data.hex() or '(empty)'} must be encoded as a literal opcode"
            )

    def encode(self) -> bytes:
        length = len(self.data)
        if length <= MAX_DIRECT_PUSH:
            prefix = bytes([length])
        elif length <= 0xFF:
            prefix = bytes([OP_PUSHDATA1, length])
        elif length <= 0xFFFF:
            prefix = bytes([OP_PUSHDATA2]) + struct.pack("<H", length)
        else:
            prefix = bytes([OP_PUSHDATA4]) + struct.pack("<I", length)
        return prefix + self.data


@dataclass(frozen=True)
class Literal:
    """Small integer opcode: OP_0 or OP_1..OP_16."""

    value: int

    def __post_init__(self) -> None:
        if not 0 <= self.value <= 16:
            raise ValueError(f"Literal out of range: {self.value}")

    @property
    def data(self) -> bytes:
        return bytes([self.value])

    def encode(self) -> bytes:
        return bytes([OP_0 if self.value == 0 else OP_1 - 1 + self.value])


@dataclass(frozen=True)
class Operator:
    """Any opcode that is not a data push or small integer."""

    opcode: int

    def __post_init__(self) -> None:
        if not 0 <= self.opcode <= 0xFF:
            raise ValueError(f"Invalid opcode: {self.opcode}")
        if self.opcode <= OP_PUSHDATA4 or OP_1 <= self.opcode <= OP_16:
            raise ValueError(f"Opcode {self.opcode:#04x} is a push, not an operator")

    def encode(self) -> bytes:
        return bytes([self.opcode])


ScriptElement = Union[Push, Literal, Operator]


def push(data: bytes) -> ScriptElement:
    """Return the minimal element that pushes ``data``."""
    value = _literal_value(data)
    if value is not None:
        return Literal(value)
    if data == b"\x81":
        return Operator(OP_1NEGATE)
    return Push(bytes(data))


def pushed_data(element: ScriptElement) -> bytes | None:
    """Bytes an element places on the stack, or None for non-push operators."""
    if isinstance(element, Push):
        return element.data
    if isinstance(element, Literal):
        return element.data
    if element.opcode == OP_1NEGATE:
        return b"\x81"
    return None


def encode_elements(elements: list[ScriptElement]) -> bytes:
    out = bytearray()
    for element in elements:
        if not isinstance(element, (Push, Literal, Operator)):
            raise TypeError(f"Not a script element: {element!r}")
        out += element.encode()
    return bytes(out)


def parse_script(script: bytes) -> list[ScriptElement]:
    """
    Tokenize a script into elements.

    Non-minimal pushes found on chain are normalized to their minimal form.
    """
    elements: list[ScriptElement] = []
    pos = 0
    while pos < len(script):
        opcode = script[pos]
        pos += 1
        if opcode == OP_0:
            elements.append(Literal(0))
            continue
        if OP_1 <= opcode <= OP_16:
            elements.append(Literal(opcode - OP_1 + 1))
            continue
        if opcode > OP_PUSHDATA4:
            elements.append(Operator(opcode))
            continue

        if opcode <= MAX_DIRECT_PUSH:
            length = opcode
        else:
            width = {OP_PUSHDATA1: 1, OP_PUSHDATA2: 2, OP_PUSHDATA4: 4}[opcode]
            if pos + width > len(script):
                raise MalformedEnvelopeError(f"Truncated push length at offset {pos - 1}")
            length = int.from_bytes(script[pos : pos + width], "little")
            pos += width
        if pos + length > len(script):
            raise MalformedEnvelopeError(
                f"Push of {length} bytes at offset {pos} runs past end of script"
            )
        elements.append(push(script[pos : pos + length]))
        pos += length
    return elements


@dataclass(frozen=True)
class Envelope:
    """Inscription content. Write-once."""

    content_type: str
    body: bytes
    marker: bytes = ENVELOPE_MARKER

    def __post_init__(self) -> None:
        object.__setattr__(self, "body", bytes(self.body))
        if not self.content_type:
            raise ValueError("Envelope content type must not be empty")

    def chunks(self) -> list[bytes]:
        return [
            self.body[i : i + MAX_SCRIPT_ELEMENT_SIZE]
            for i in range(0, len(self.body), MAX_SCRIPT_ELEMENT_SIZE)
        ]

    def elements(self) -> list[ScriptElement]:
        header: list[ScriptElement] = [
            push(self.marker),
            Literal(1),
            push(self.content_type.encode("utf-8")),
            Literal(0),
        ]
        return header + [push(chunk) for chunk in self.chunks()]

    @property
    def element_count(self) -> int:
        return 4 + len(self.chunks())


def build_envelope_script(envelope: Envelope) -> bytes:
    return encode_elements(envelope.elements())


def build_redeem_script(pubkey: bytes, drop_count: int) -> bytes:
    """Build ``<pubkey> OP_CHECKSIGVERIFY OP_DROP * drop_count OP_1``."""
    if drop_count < 1:
        raise ValueError(f"Redeem script needs at least one drop, got {drop_count}")
    elements: list[ScriptElement] = [push(pubkey), Operator(OP_CHECKSIGVERIFY)]
    elements += [Operator(OP_DROP)] * drop_count
    elements.append(Literal(1))
    return encode_elements(elements)


def parse_redeem_script(script: bytes) -> tuple[bytes, int]:
    """
    Parse an inscription redeem script.

    Returns:
        (pubkey, drop count)
    """
    try:
        elements = parse_script(script)
    except MalformedEnvelopeError as e:
        raise MalformedEnvelopeError(f"Not a redeem script: {e}") from e

    if (
        len(elements) < 4
        or not isinstance(elements[0], Push)
        or len(elements[0].data) not in (33, 65)
        or elements[1] != Operator(OP_CHECKSIGVERIFY)
        or elements[-1] != Literal(1)
    ):
        raise MalformedEnvelopeError("Not a redeem script")
    drops = elements[2:-1]
    if any(e != Operator(OP_DROP) for e in drops):
        raise MalformedEnvelopeError("Unexpected opcode in redeem script")
    return elements[0].data, len(drops)


def p2sh_script(redeem_script: bytes) -> bytes:
    """``OP_HASH160 <hash160(redeem)> OP_EQUAL``."""
    return bytes([OP_HASH160, 0x14]) + hash160(redeem_script) + bytes([OP_EQUAL])


def p2pkh_script(pubkey_hash: bytes) -> bytes:
    if len(pubkey_hash) != 20:
        raise ValueError(f"Public key hash must be 20 bytes, got {len(pubkey_hash)}")
    return (
        bytes([OP_DUP, OP_HASH160, 0x14])
        + pubkey_hash
        + bytes([OP_EQUALVERIFY, OP_CHECKSIG])
    )


def address_to_script(address: str) -> bytes:
    """Locking script for a transparent address."""
    kind, payload, _ = decode_address(address)
    if kind == AddressKind.P2SH:
        return bytes([OP_HASH160, 0x14]) + payload + bytes([OP_EQUAL])
    return p2pkh_script(payload)


def p2pkh_script_sig(signature: bytes, pubkey: bytes) -> bytes:
    """``<sig+hashtype> <pubkey>``."""
    return encode_elements([push(signature), push(pubkey)])


def reveal_script_sig(envelope_script: bytes, signature: bytes, redeem_script: bytes) -> bytes:
    """``<envelope> <sig+hashtype> <redeem script>``."""
    return envelope_script + encode_elements([push(signature), push(redeem_script)])


@dataclass(frozen=True)
class InscriptionScripts:
    envelope_script: bytes
    redeem_script: bytes
    locking_script: bytes

    @classmethod
    def build(cls, pubkey: bytes, envelope: Envelope) -> InscriptionScripts:
        redeem = build_redeem_script(pubkey, envelope.element_count)
        return cls(
            envelope_script=build_envelope_script(envelope),
            redeem_script=redeem,
            locking_script=p2sh_script(redeem),
        )


def _find_marker(elements: list[ScriptElement], marker: bytes) -> int:
    for index, element in enumerate(elements):
        if pushed_data(element) == marker:
            return index
    raise MalformedEnvelopeError(f"Envelope marker {marker!r} not found")


def _reveal_tail_drops(collected: list[bytes]) -> int | None:
    """Drop count when ``collected`` ends with ``<sig> <redeem script>``, else None."""
    if len(collected) < 2:
        return None
    try:
        _, drop_count = parse_redeem_script(collected[-1])
        decode_der_signature(collected[-2])
    except (MalformedEnvelopeError, SignatureError):
        return None
    return drop_count


def parse_envelope(script: bytes, marker: bytes = ENVELOPE_MARKER) -> Envelope:
    """
    Recover an envelope from a script, typically a reveal scriptSig.

    Body pushes are collected up to the first non-push opcode. When they end
    with a signature and a redeem script, the redeem script's drop count
    must equal the number of envelope elements before them; those two pushes
    are not body. A body chunk that merely looks like a redeem script is kept.
    """
    elements = parse_script(script)
    start = _find_marker(elements, marker)

    collected: list[bytes] = []
    for element in elements[start:]:
        data = pushed_data(element)
        if data is None:
            break
        collected.append(data)

    drop_count = _reveal_tail_drops(collected)
    if drop_count is not None:
        if drop_count != len(collected) - 2:
            raise MalformedEnvelopeError(
                f"Redeem script drops {drop_count} elements, envelope has "
                f"{len(collected) - 2}"
            )
        collected = collected[:drop_count]

    # collected[0] is the marker; then tag/value pairs until the OP_0 separator
    content_type: bytes | None = None
    pos = 1
    while True:
        if pos >= len(collected):
            raise MalformedEnvelopeError("Envelope has no body separator")
        tag = collected[pos]
        if tag == b"\x00":
            pos += 1
            break
        if pos + 1 >= len(collected):
            raise MalformedEnvelopeError(f"Envelope tag {tag.hex()} has no value")
        if tag == b"\x01" and content_type is None:
            content_type = collected[pos + 1]
        pos += 2

    if content_type is None:
        raise MalformedEnvelopeError("Envelope has no content type")
    try:
        content_type_str = content_type.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedEnvelopeError(f"Content type is not UTF-8: {e}") from e

    return Envelope(content_type=content_type_str, body=b"".join(collected[pos:]), marker=marker)
