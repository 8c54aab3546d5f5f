"""
Tests for InscriberSettings.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from zinscore.models import NetworkType
from zinscriber.config import InscriberSettings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Run from an empty directory so no .env file is picked up."""
    monkeypatch.chdir(tmp_path)


class TestInscriberSettings:
    def test_defaults(self) -> None:
        settings = InscriberSettings()
        assert settings.network == NetworkType.MAINNET
        assert settings.inscription_amount == 60_000
        assert settings.platform_fee == 0
        assert settings.epoch_id_override is None
        assert settings.provider_timeout == 8.0

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ZINSCRIBE_NETWORK", "testnet")
        monkeypatch.setenv("ZINSCRIBE_INSCRIPTION_AMOUNT", "75000")
        monkeypatch.setenv("ZINSCRIBE_NODE_RPC_URL", "http://localhost:8232")

        settings = InscriberSettings()
        assert settings.network == NetworkType.TESTNET
        assert settings.inscription_amount == 75_000
        assert settings.node_rpc_url == "http://localhost:8232"

    @pytest.mark.parametrize(
        "raw, expected",
        [("0xc8e71055", 0xC8E71055), ("3370586197", 0xC8E71055), ("", None)],
    )
    def test_epoch_override(
        self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: int | None
    ) -> None:
        monkeypatch.setenv("ZINSCRIBE_EPOCH_ID_OVERRIDE", raw)
        assert InscriberSettings().epoch_id_override == expected

    def test_platform_fee_needs_treasury(self) -> None:
        with pytest.raises(ValidationError, match="treasury_address"):
            InscriberSettings(platform_fee=1_000)
        settings = InscriberSettings(platform_fee=1_000, treasury_address="t1treasury")
        assert settings.platform_fee == 1_000

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(ValidationError):
            InscriberSettings(inscription_amount=-1)

    def test_fee_policy(self) -> None:
        policy = InscriberSettings(marginal_fee=6_000, fee_floor=12_000).fee_policy()
        assert policy.compute_fee(1, 1) == 12_000
        assert policy.compute_fee(3, 1) == 18_000
