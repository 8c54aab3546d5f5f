"""
Tests for inscription records and content classification.
"""

from __future__ import annotations

import pytest

from zinscriber.records import (
    InscriptionKind,
    InscriptionRecord,
    MemoryInscriptionRecorder,
    Zrc20Tag,
    classify_content,
    inscription_id_for,
    parse_zrc20,
)


def test_inscription_id() -> None:
    assert inscription_id_for("ab" * 32) == f"{'ab' * 32}i0"
    assert inscription_id_for("ab" * 32, 3) == f"{'ab' * 32}i3"


class TestZrc20:
    def test_mint(self) -> None:
        tag = parse_zrc20('{"p":"zrc-20","op":"mint","tick":"ZERO","amt":"1000"}')
        assert tag == Zrc20Tag(tick="zero", op="mint", amt="1000")

    def test_numeric_amount(self) -> None:
        tag = parse_zrc20('{"p":"zrc-20","op":"deploy","tick":"zero","max":"21000000","amt":5}')
        assert tag.amt == "5"

    @pytest.mark.parametrize(
        "text",
        [
            "hello",
            "[1, 2]",
            '{"p":"brc-20","op":"mint","tick":"ordi"}',
            '{"p":"zrc-20","op":"mint"}',
            '{"p":"zrc-20","op":"mint","tick":""}',
        ],
    )
    def test_not_zrc20(self, text: str) -> None:
        assert parse_zrc20(text) is None


class TestClassifyContent:
    def test_text(self) -> None:
        assert classify_content("text/plain;charset=utf-8", b"hello") == (
            InscriptionKind.TEXT,
            "hello",
            None,
        )

    def test_json(self) -> None:
        kind, preview, tag = classify_content("application/json", b'{"a": 1}')
        assert kind == InscriptionKind.JSON
        assert preview == '{"a": 1}'
        assert tag is None

    def test_zrc20_in_text(self) -> None:
        body = b'{"p":"zrc-20","op":"mint","tick":"zero","amt":"1"}'
        kind, _, tag = classify_content("text/plain", body)
        assert kind == InscriptionKind.ZRC20
        assert tag.tick == "zero"

    def test_binary(self) -> None:
        assert classify_content("image/png", b"\x89PNG") == (InscriptionKind.BINARY, "", None)

    def test_invalid_utf8_text(self) -> None:
        kind, preview, _ = classify_content("text/plain", b"\xff\xfe")
        assert kind == InscriptionKind.BINARY
        assert preview == ""

    def test_preview_truncated(self) -> None:
        _, preview, _ = classify_content("text/plain", b"x" * 500)
        assert len(preview) == 200


class TestMemoryRecorder:
    @pytest.mark.asyncio
    async def test_record_and_lookup(self) -> None:
        recorder = MemoryInscriptionRecorder()
        for i, created in enumerate((20.0, 10.0)):
            await recorder.record(
                InscriptionRecord(
                    inscription_id=f"{i:02x}" * 32 + "i0",
                    commit_txid="cc" * 32,
                    reveal_txid=f"{i:02x}" * 32,
                    address="t1owner",
                    content_type="text/plain",
                    content_size=5,
                    created_at=created,
                )
            )

        records = recorder.by_address("t1owner")
        assert [r.created_at for r in records] == [10.0, 20.0]
        assert recorder.by_address("t1other") == []
