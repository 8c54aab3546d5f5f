"""
Completed inscription records and their persistence.
"""

from __future__ import annotations

import json
import time
from enum import Enum

from pydantic import BaseModel, Field

from zinscriber.providers.base import InscriptionRecorder

PREVIEW_LENGTH = 200
ZRC20_PROTOCOL = "zrc-20"


class InscriptionKind(str, Enum):
    TEXT = "text"
    JSON = "json"
    ZRC20 = "zrc20"
    BINARY = "binary"


class Zrc20Tag(BaseModel):
    tick: str
    op: str
    amt: str | None = None

    model_config = {"frozen": True}


class InscriptionRecord(BaseModel):
    inscription_id: str
    commit_txid: str
    reveal_txid: str
    address: str
    content_type: str
    content_size: int = Field(..., ge=0)
    content_preview: str = ""
    kind: InscriptionKind = InscriptionKind.BINARY
    zrc20: Zrc20Tag | None = None
    platform_fee: int = 0
    treasury_address: str = ""
    created_at: float = Field(default_factory=time.time)


def inscription_id_for(reveal_txid: str, index: int = 0) -> str:
    return f"{reveal_txid}i{index}"


def parse_zrc20(text: str) -> Zrc20Tag | None:
    """Return the ZRC-20 tag of a JSON body, or None if it is not one."""
    try:
        payload = json.loads(text)
    except ValueError:
        return None
    if not isinstance(payload, dict) or payload.get("p") != ZRC20_PROTOCOL:
        return None
    tick, op = payload.get("tick"), payload.get("op")
    if not isinstance(tick, str) or not tick or not isinstance(op, str):
        return None
    amt = payload.get("amt")
    return Zrc20Tag(tick=tick.lower(), op=op, amt=None if amt is None else str(amt))


def classify_content(
    content_type: str, body: bytes
) -> tuple[InscriptionKind, str, Zrc20Tag | None]:
    """
    Classify a body for display.

    Returns:
        (kind, preview text, ZRC-20 tag if any)
    """
    mime = content_type.split(";", 1)[0].strip().lower()
    is_textual = mime.startswith("text/") or mime == "application/json"
    if not is_textual:
        return InscriptionKind.BINARY, "", None
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return InscriptionKind.BINARY, "", None

    preview = text[:PREVIEW_LENGTH]
    tag = parse_zrc20(text)
    if tag is not None:
        return InscriptionKind.ZRC20, preview, tag
    if mime == "application/json":
        return InscriptionKind.JSON, preview, None
    return InscriptionKind.TEXT, preview, None


class MemoryInscriptionRecorder(InscriptionRecorder):
    """Keeps records in a dict keyed by inscription id."""

    def __init__(self) -> None:
        self.records: dict[str, InscriptionRecord] = {}

    async def record(self, record: InscriptionRecord) -> None:
        self.records[record.inscription_id] = record

    def by_address(self, address: str) -> list[InscriptionRecord]:
        return sorted(
            (r for r in self.records.values() if r.address == address),
            key=lambda r: r.created_at,
        )
