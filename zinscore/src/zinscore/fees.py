"""
ZIP-317 fee policy and output planning.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from zinscore.codec import TxOutput
from zinscore.constants import DUST_LIMIT, MARGINAL_FEE, MIN_FEE_FLOOR
from zinscore.errors import InputUnavailableError


@dataclass(frozen=True)
class FeePolicy:
    """
    Conventional fee rules.

    A transparent-only transaction has ``max(inputs, outputs)`` logical
    actions; the fee is the per-action cost times that count, never below
    the floor.
    """

    marginal_fee: int = MARGINAL_FEE
    fee_floor: int = MIN_FEE_FLOOR
    dust_limit: int = DUST_LIMIT

    def compute_fee(self, n_inputs: int, n_outputs: int) -> int:
        if n_inputs < 0 or n_outputs < 0:
            raise ValueError(f"Negative action count: {n_inputs} inputs, {n_outputs} outputs")
        return max(self.fee_floor, max(n_inputs, n_outputs) * self.marginal_fee)

    def resolve_fee(self, requested: int | None, n_inputs: int, n_outputs: int) -> int:
        """Return the requested fee, raised to the minimum if it is too low."""
        minimum = self.compute_fee(n_inputs, n_outputs)
        if requested is None:
            return minimum
        if requested < minimum:
            logger.warning(
                f"Fee {requested} below minimum {minimum} for "
                f"{n_inputs} inputs / {n_outputs} outputs, using minimum"
            )
            return minimum
        return requested

    def inscription_fee(
        self, requested: int | None, n_inputs: int, with_platform_fee: bool = False
    ) -> int:
        """
        Single fee used for both the commit and the reveal.

        The commit is sized assuming a change output is present; the reveal
        always spends one input into one output.
        """
        commit_outputs = 2 + (1 if with_platform_fee else 0)
        commit_fee = self.resolve_fee(requested, n_inputs, commit_outputs)
        return max(commit_fee, self.compute_fee(1, 1))

    def minimum_inscription_amount(self, fee: int) -> int:
        """The inscription output must cover the reveal fee plus a non-dust output."""
        return fee + self.dust_limit + 1

    def resolve_inscription_amount(self, requested: int, fee: int) -> int:
        minimum = self.minimum_inscription_amount(fee)
        if requested < minimum:
            logger.warning(
                f"Inscription amount {requested} too small for fee {fee}, raising to {minimum}"
            )
            return minimum
        return requested

    def plan_commit_outputs(
        self,
        input_value: int,
        inscription_amount: int,
        fee: int,
        locking_script: bytes,
        change_script: bytes,
        platform_fee: int = 0,
        platform_script: bytes | None = None,
    ) -> list[TxOutput]:
        """
        Lay out commit outputs as ``[inscription, platform fee?, change?]``.

        Change at or below the dust limit is left to the miner.
        """
        if platform_fee and platform_script is None:
            raise ValueError("Platform fee requires a platform script")

        required = inscription_amount + platform_fee + fee
        if input_value < required:
            raise InputUnavailableError(
                f"Insufficient funds: have {input_value}, need {required}",
                required_value=required,
                available_value=input_value,
            )

        outputs = [TxOutput(value=inscription_amount, script_pubkey=locking_script)]
        if platform_fee > 0:
            outputs.append(TxOutput(value=platform_fee, script_pubkey=platform_script))
        change = input_value - required
        if change > self.dust_limit:
            outputs.append(TxOutput(value=change, script_pubkey=change_script))
        elif change:
            logger.debug(f"Dropping {change} zats of dust change into the fee")
        return outputs

    def plan_split_outputs(
        self,
        input_value: int,
        count: int,
        amount_each: int,
        fee: int,
        output_script: bytes,
        change_script: bytes | None = None,
    ) -> list[TxOutput]:
        """``count`` equal outputs, then change if any is left above dust."""
        if count < 1:
            raise ValueError(f"Split count must be positive, got {count}")
        if amount_each <= self.dust_limit:
            raise ValueError(f"Split amount {amount_each} is not above dust ({self.dust_limit})")

        required = count * amount_each + fee
        if input_value < required:
            raise InputUnavailableError(
                f"Insufficient funds for split: have {input_value}, need {required}",
                required_value=required,
                available_value=input_value,
            )

        outputs = [TxOutput(value=amount_each, script_pubkey=output_script) for _ in range(count)]
        change = input_value - required
        if change > self.dust_limit:
            outputs.append(TxOutput(value=change, script_pubkey=change_script or output_script))
        return outputs


DEFAULT_FEE_POLICY = FeePolicy()


def compute_fee(n_inputs: int, n_outputs: int) -> int:
    return DEFAULT_FEE_POLICY.compute_fee(n_inputs, n_outputs)
