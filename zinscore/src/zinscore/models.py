"""
Core data models using Pydantic for validation and serialization.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    REGTEST = "regtest"


class Outpoint(BaseModel):
    """Reference to one output of a prior transaction. Used as the lock key."""

    txid: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(..., ge=0, le=0xFFFFFFFF)

    model_config = {"frozen": True}

    @field_validator("txid")
    @classmethod
    def normalize_txid(cls, v: str) -> str:
        return v.lower()

    @classmethod
    def parse(cls, location: str) -> Outpoint:
        """Parse a ``txid:vout`` location string."""
        txid, sep, vout = location.partition(":")
        if not sep:
            raise ValueError(f"Invalid outpoint location: {location}")
        return cls(txid=txid, vout=int(vout))

    def __str__(self) -> str:
        return f"{self.txid}:{self.vout}"


class FundingInput(BaseModel):
    """A spendable output as reported by an index provider."""

    outpoint: Outpoint
    value: int = Field(..., ge=0)
    address: str = ""
    script_pubkey: str = ""
    confirmations: int = Field(default=0, ge=0)
    height: int | None = None

    model_config = {"frozen": True}

    @property
    def txid(self) -> str:
        return self.outpoint.txid

    @property
    def vout(self) -> int:
        return self.outpoint.vout
