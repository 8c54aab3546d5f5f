"""
Tests for zinscore.script

Covers the minimal-push rules and envelope building/parsing, including a
reveal scriptSig taken from a live inscription.
"""

from __future__ import annotations

import pytest

from zinscore.errors import MalformedEnvelopeError
from zinscore.script import (
    OP_1NEGATE,
    OP_CHECKSIG,
    OP_DROP,
    Envelope,
    InscriptionScripts,
    Literal,
    Operator,
    Push,
    build_envelope_script,
    build_redeem_script,
    encode_elements,
    p2pkh_script_sig,
    p2sh_script,
    parse_envelope,
    parse_redeem_script,
    parse_script,
    push,
    pushed_data,
    reveal_script_sig,
)

# Stand-in DER signature with hash type; parsing never verifies it
FAKE_SIGNATURE = bytes.fromhex("3006020101020101") + b"\x01"


def _body(size: int) -> bytes:
    return bytes(i % 251 for i in range(size))


class TestElements:
    """Tests for the closed set of script elements."""

    def test_small_values_become_literals(self) -> None:
        for value in range(1, 17):
            element = push(bytes([value]))
            assert element == Literal(value)
            assert element.encode() == bytes([0x50 + value])

    def test_zero_and_empty_become_op_0(self) -> None:
        assert push(b"") == Literal(0)
        assert push(b"\x00") == Literal(0)
        assert Literal(0).encode() == b"\x00"

    def test_negative_one(self) -> None:
        assert push(b"\x81") == Operator(OP_1NEGATE)
        assert pushed_data(Operator(OP_1NEGATE)) == b"\x81"

    def test_other_single_bytes_are_pushed(self) -> None:
        assert push(b"\x11") == Push(b"\x11")
        assert push(b"\x11").encode() == b"\x01\x11"

    def test_push_refuses_literal_data(self) -> None:
        for data in (b"", b"\x00", b"\x05", b"\x10", b"\x81"):
            with pytest.raises(ValueError, match="literal opcode"):
                Push(data)

    def test_literal_range(self) -> None:
        with pytest.raises(ValueError):
            Literal(17)
        with pytest.raises(ValueError):
            Literal(-1)

    def test_operator_refuses_push_opcodes(self) -> None:
        for opcode in (0x00, 0x20, 0x4C, 0x4E, 0x51, 0x60):
            with pytest.raises(ValueError):
                Operator(opcode)
        assert Operator(OP_DROP).encode() == b"\x75"

    def test_push_size_tiers(self) -> None:
        assert Push(b"a" * 75).encode()[:1] == bytes([75])
        assert Push(b"a" * 76).encode()[:2] == bytes([0x4C, 76])
        assert Push(b"a" * 255).encode()[:2] == bytes([0x4C, 0xFF])
        assert Push(b"a" * 256).encode()[:3] == bytes([0x4D, 0x00, 0x01])
        assert Push(b"a" * 65536).encode()[:5] == bytes([0x4E, 0x00, 0x00, 0x01, 0x00])

    def test_encode_rejects_foreign_objects(self) -> None:
        with pytest.raises(TypeError):
            encode_elements([b"\x01"])  # type: ignore[list-item]

    def test_parse_normalizes_non_minimal_pushes(self) -> None:
        assert parse_script(b"\x01\x05") == [Literal(5)]
        assert parse_script(b"\x4c\x02ab") == [Push(b"ab")]
        assert parse_script(b"\x00\x51\xac") == [Literal(0), Literal(1), Operator(OP_CHECKSIG)]

    def test_parse_truncated(self) -> None:
        with pytest.raises(MalformedEnvelopeError, match="past end"):
            parse_script(b"\x05ab")
        with pytest.raises(MalformedEnvelopeError, match="Truncated"):
            parse_script(b"\x4d\x01")


class TestEnvelopeBuilding:
    def test_text_layout(self) -> None:
        script = build_envelope_script(Envelope("text/plain", b"hello"))
        assert script == (
            b"\x03ord" + b"\x51" + b"\x0atext/plain" + b"\x00" + b"\x05hello"
        )

    def test_single_small_byte_body_uses_literal(self) -> None:
        script = build_envelope_script(Envelope("text/plain", b"\x03"))
        assert script.endswith(b"\x00\x53")

    def test_no_literal_eligible_value_is_pushed(self) -> None:
        envelope = Envelope("a", _body(2000) + b"\x07")
        for element in envelope.elements():
            data = pushed_data(element)
            if data is not None and len(data) == 1 and data[0] <= 16:
                assert isinstance(element, Literal)

    def test_chunking(self) -> None:
        envelope = Envelope("image/png", _body(1041))
        assert [len(c) for c in envelope.chunks()] == [520, 520, 1]
        assert envelope.element_count == 7

    def test_empty_body(self) -> None:
        envelope = Envelope("text/plain", b"")
        assert envelope.chunks() == []
        assert envelope.element_count == 4

    def test_empty_content_type_rejected(self) -> None:
        with pytest.raises(ValueError):
            Envelope("", b"x")

    def test_redeem_script_layout(self, pubkey: bytes) -> None:
        redeem = build_redeem_script(pubkey, 5)
        assert redeem == b"\x21" + pubkey + b"\xad" + b"\x75" * 5 + b"\x51"
        assert parse_redeem_script(redeem) == (pubkey, 5)

    def test_redeem_script_needs_drops(self, pubkey: bytes) -> None:
        with pytest.raises(ValueError):
            build_redeem_script(pubkey, 0)

    def test_scripts_balance_the_stack(self, pubkey: bytes) -> None:
        envelope = Envelope("text/plain", _body(1500))
        scripts = InscriptionScripts.build(pubkey, envelope)

        _, drops = parse_redeem_script(scripts.redeem_script)
        assert drops == len(parse_script(scripts.envelope_script))
        assert scripts.locking_script == p2sh_script(scripts.redeem_script)
        assert scripts.locking_script[:2] == b"\xa9\x14"
        assert scripts.locking_script[-1:] == b"\x87"

    def test_p2pkh_script_sig(self, pubkey: bytes) -> None:
        assert p2pkh_script_sig(FAKE_SIGNATURE, pubkey) == (
            bytes([len(FAKE_SIGNATURE)]) + FAKE_SIGNATURE + b"\x21" + pubkey
        )


class TestEnvelopeParsing:
    """Tests for recovering envelopes from reveal scriptSigs."""

    @pytest.mark.parametrize("size", [0, 1, 519, 520, 521, 5200])
    def test_reveal_script_sig_round_trip(self, pubkey: bytes, size: int) -> None:
        envelope = Envelope("application/octet-stream", _body(size))
        scripts = InscriptionScripts.build(pubkey, envelope)
        script_sig = reveal_script_sig(
            scripts.envelope_script, FAKE_SIGNATURE, scripts.redeem_script
        )

        assert parse_envelope(script_sig) == envelope

    def test_envelope_script_alone(self) -> None:
        envelope = Envelope("text/plain;charset=utf-8", "héllo".encode())
        assert parse_envelope(build_envelope_script(envelope)) == envelope

    @pytest.mark.parametrize("drops", [4, 5, 9])
    def test_redeem_shaped_body_is_kept(self, pubkey: bytes, drops: int) -> None:
        envelope = Envelope("application/octet-stream", build_redeem_script(pubkey, drops))
        assert parse_envelope(build_envelope_script(envelope)) == envelope

    def test_redeem_shaped_last_chunk_is_kept(self, pubkey: bytes) -> None:
        envelope = Envelope("application/octet-stream", _body(520) + build_redeem_script(pubkey, 4))
        assert parse_envelope(build_envelope_script(envelope)) == envelope

    def test_redeem_shaped_body_in_reveal(self, pubkey: bytes) -> None:
        envelope = Envelope("application/octet-stream", build_redeem_script(pubkey, 5))
        scripts = InscriptionScripts.build(pubkey, envelope)
        script_sig = reveal_script_sig(
            scripts.envelope_script, FAKE_SIGNATURE, scripts.redeem_script
        )
        assert parse_envelope(script_sig) == envelope

    def test_live_reveal(self, reveal_script_sig: bytes) -> None:
        envelope = parse_envelope(reveal_script_sig)
        assert envelope.content_type == "text/plain"
        assert envelope.body == b"zatoshi.zec"

    def test_live_reveal_is_reproduced(
        self, reveal_script_sig: bytes, reveal_pubkey: bytes
    ) -> None:
        scripts = InscriptionScripts.build(reveal_pubkey, Envelope("text/plain", b"zatoshi.zec"))
        assert reveal_script_sig[:29] == scripts.envelope_script
        assert reveal_script_sig[103:] == scripts.redeem_script
        assert parse_redeem_script(scripts.redeem_script) == (reveal_pubkey, 5)

    def test_stops_at_non_push_opcode(self) -> None:
        script = (
            build_envelope_script(Envelope("text/plain", b"body"))
            + bytes([OP_CHECKSIG])
            + b"\x08trailing"
        )
        assert parse_envelope(script).body == b"body"

    def test_custom_marker(self) -> None:
        envelope = Envelope("text/plain", b"x", marker=b"zrc")
        script = build_envelope_script(envelope)
        assert parse_envelope(script, marker=b"zrc") == envelope
        with pytest.raises(MalformedEnvelopeError, match="marker"):
            parse_envelope(script)

    def test_missing_marker(self) -> None:
        with pytest.raises(MalformedEnvelopeError, match="marker"):
            parse_envelope(b"\x02hi\x51")

    def test_missing_separator(self) -> None:
        with pytest.raises(MalformedEnvelopeError, match="separator"):
            parse_envelope(b"\x03ord\x51\x0atext/plain")

    def test_tag_without_value(self) -> None:
        with pytest.raises(MalformedEnvelopeError, match="no value"):
            parse_envelope(b"\x03ord\x51")

    def test_missing_content_type(self) -> None:
        with pytest.raises(MalformedEnvelopeError, match="no content type"):
            parse_envelope(b"\x03ord\x00\x02hi")

    def test_content_type_not_utf8(self) -> None:
        with pytest.raises(MalformedEnvelopeError, match="UTF-8"):
            parse_envelope(b"\x03ord\x51\x02\xff\xfe\x00\x02hi")

    def test_redeem_script_drops_too_many(self, pubkey: bytes) -> None:
        envelope_script = build_envelope_script(Envelope("text/plain", b""))
        script_sig = reveal_script_sig(
            envelope_script, FAKE_SIGNATURE, build_redeem_script(pubkey, 9)
        )
        with pytest.raises(MalformedEnvelopeError, match="drops 9"):
            parse_envelope(script_sig)

    def test_redeem_script_drops_too_few(self, pubkey: bytes) -> None:
        envelope_script = build_envelope_script(Envelope("text/plain", b"abc"))
        script_sig = reveal_script_sig(
            envelope_script, FAKE_SIGNATURE, build_redeem_script(pubkey, 2)
        )
        with pytest.raises(MalformedEnvelopeError, match="drops 2"):
            parse_envelope(script_sig)

    def test_not_a_redeem_script(self) -> None:
        with pytest.raises(MalformedEnvelopeError):
            parse_redeem_script(b"\x51\x75\x51")
        with pytest.raises(MalformedEnvelopeError):
            parse_redeem_script(b"\x21" + b"\x02" * 33 + b"\xad\x75\xac\x51")
