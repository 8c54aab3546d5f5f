"""
Configuration management using pydantic-settings.
"""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from zinscore.constants import (
    CONTEXT_RETENTION_SECONDS,
    DEFAULT_INSCRIPTION_AMOUNT,
    DUST_LIMIT,
    EPOCH_CACHE_TTL_SECONDS,
    MARGINAL_FEE,
    MIN_FEE_FLOOR,
    STALE_LOCK_SECONDS,
)
from zinscore.fees import FeePolicy
from zinscore.models import NetworkType


class InscriberSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ZINSCRIBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    network: NetworkType = NetworkType.MAINNET

    # Amounts in zatoshis
    inscription_amount: int = Field(default=DEFAULT_INSCRIPTION_AMOUNT, ge=0)
    fee_floor: int = Field(default=MIN_FEE_FLOOR, ge=0)
    marginal_fee: int = Field(default=MARGINAL_FEE, ge=0)
    dust_limit: int = Field(default=DUST_LIMIT, ge=0)
    platform_fee: int = Field(default=0, ge=0)
    treasury_address: str = ""

    # Coordination
    stale_lock_seconds: float = Field(default=STALE_LOCK_SECONDS, gt=0)
    context_retention_seconds: float = Field(default=CONTEXT_RETENTION_SECONDS, gt=0)
    epoch_cache_ttl: float = Field(default=EPOCH_CACHE_TTL_SECONDS, gt=0)
    epoch_id_override: int | None = None

    # Providers
    provider_timeout: float = Field(default=8.0, gt=0)
    blockchair_url: str = "https://api.blockchair.com/zcash"
    blockchair_api_key: str = ""
    zerdinals_url: str = "https://utxos.zerdinals.com"
    zerdinals_indexer_url: str = "https://indexer.zerdinals.com"
    node_rpc_url: str = ""
    node_rpc_api_key: str = ""
    node_rpc_user: str = ""
    node_rpc_password: str = ""

    log_level: str = "INFO"
    log_verbose: bool = False
    log_file: str = ""
    log_rotation: str = "10 MB"

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator("epoch_id_override", mode="before")
    @classmethod
    def parse_epoch_id(cls, v: object) -> object:
        """Accept decimal or 0x-prefixed hex; empty means no override."""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            return int(v, 16) if v.lower().startswith("0x") else int(v)
        return v

    @model_validator(mode="after")
    def check_platform_fee(self) -> InscriberSettings:
        if self.platform_fee > 0 and not self.treasury_address:
            raise ValueError("platform_fee requires treasury_address")
        return self

    def fee_policy(self) -> FeePolicy:
        return FeePolicy(
            marginal_fee=self.marginal_fee,
            fee_floor=self.fee_floor,
            dust_limit=self.dust_limit,
        )


def get_settings() -> InscriberSettings:
    return InscriberSettings()
