"""
Clearing price calculation and per-swap settlement amounts.

Algorithm Design:
- Type: Fixed-Point Integer Arithmetic / Deterministic Rounding
- Time Complexity: O(1) per batch
- Invariant: every validator derives bit-identical prices from the same
  aggregates (integer arithmetic only, floor rounding, saturation at u64).

Price convention:
- price_1: units of asset_2 received per unit of asset_1 surrendered, scaled by PRICE_SCALE
- price_2: units of asset_1 received per unit of asset_2 surrendered, scaled by PRICE_SCALE

The curve is a configuration point. Every rule must be total over
non-negative aggregates (u128, the sum of a batch of u64 inputs) and must not
fail when one side is zero. Relabeling the assets must reverse the prices.
Each rule also decides whether a batch cleared at all; prices that floor to
zero do not by themselves turn a batch into a refund.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..state.assets import TradingPair
from ..state.canonical import U64_MAX
from ..state.messages import BatchSwapOutputData, SwapPlaintext


PRICE_SCALE = 10**8


def _ratio_price(numerator: int, denominator: int) -> int:
    """floor(numerator * PRICE_SCALE / denominator), saturating at u64."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return min((numerator * PRICE_SCALE) // denominator, U64_MAX)


def _require_aggregate(value: int, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"{name} must be a non-negative int: {value!r}")
    return value


class ClearingRule:
    """A pure function from a batch's opened aggregates to (price_1, price_2)."""

    name: str = ""

    def prices(self, delta_1: int, delta_2: int) -> Tuple[int, int]:
        raise NotImplementedError

    def clears(self, delta_1: int, delta_2: int) -> bool:
        """Whether the batch trades at `prices`; otherwise every swap is refunded."""
        raise NotImplementedError

    def relabeled(self) -> "ClearingRule":
        """The same rule with asset_1/asset_2 swapped (identity for symmetric rules)."""
        return self


class ProportionalClearing(ClearingRule):
    """
    Pure peer-to-peer split: all asset_1 sellers share the asset_2 inflow pro rata,
    and vice versa.

        price_1 = floor(delta_2 * S / delta_1)
        price_2 = floor(delta_1 * S / delta_2)

    If either side is empty the batch does not clear: both prices are 0 and
    each swap redeems its own inputs.
    """

    name = "proportional"

    def prices(self, delta_1: int, delta_2: int) -> Tuple[int, int]:
        _require_aggregate(delta_1, name="delta_1")
        _require_aggregate(delta_2, name="delta_2")
        if delta_1 == 0 or delta_2 == 0:
            return 0, 0
        return _ratio_price(delta_2, delta_1), _ratio_price(delta_1, delta_2)

    def clears(self, delta_1: int, delta_2: int) -> bool:
        return delta_1 > 0 and delta_2 > 0


class ConstantProductClearing(ClearingRule):
    """
    Both sides trade simultaneously against virtual reserves (R1, R2):

        price_1 = floor(R2 * S / (R1 + delta_1))
        price_2 = floor(R1 * S / (R2 + delta_2))

    so asset_1 sellers receive at most R2 * delta_1 / (R1 + delta_1) in total,
    the constant-product output for delta_1.

    The batch always clears: the reserves take the other side, even when a
    large inflow floors a price to zero.
    """

    name = "constant_product"

    def __init__(self, reserve_1: int, reserve_2: int) -> None:
        _require_aggregate(reserve_1, name="reserve_1")
        _require_aggregate(reserve_2, name="reserve_2")
        if reserve_1 == 0 or reserve_2 == 0:
            raise ValueError("constant product reserves must be positive")
        self.reserve_1 = reserve_1
        self.reserve_2 = reserve_2

    def prices(self, delta_1: int, delta_2: int) -> Tuple[int, int]:
        _require_aggregate(delta_1, name="delta_1")
        _require_aggregate(delta_2, name="delta_2")
        return (
            _ratio_price(self.reserve_2, self.reserve_1 + delta_1),
            _ratio_price(self.reserve_1, self.reserve_2 + delta_2),
        )

    def clears(self, delta_1: int, delta_2: int) -> bool:
        return True

    def relabeled(self) -> "ConstantProductClearing":
        return ConstantProductClearing(self.reserve_2, self.reserve_1)

    def __repr__(self) -> str:
        return f"ConstantProductClearing(reserve_1={self.reserve_1}, reserve_2={self.reserve_2})"


_RULES: Dict[str, Callable[..., ClearingRule]] = {
    ProportionalClearing.name: ProportionalClearing,
    ConstantProductClearing.name: ConstantProductClearing,
}


def make_clearing_rule(name: str, params: Optional[Mapping[str, Any]] = None) -> ClearingRule:
    factory = _RULES.get(name)
    if factory is None:
        raise ValueError(f"unsupported clearing rule: {name!r}")
    try:
        return factory(**dict(params or {}))
    except TypeError as exc:
        raise ValueError(f"invalid params for clearing rule {name!r}: {exc}") from exc


def compute_output_data(
    pair: TradingPair,
    delta_1: int,
    delta_2: int,
    rule: ClearingRule,
    *,
    height: int = 0,
) -> BatchSwapOutputData:
    price_1, price_2 = rule.prices(delta_1, delta_2)
    return BatchSwapOutputData(
        trading_pair=pair,
        delta_1=delta_1,
        delta_2=delta_2,
        price_1=price_1,
        price_2=price_2,
        cleared=rule.clears(delta_1, delta_2),
        height=height,
    )


def convert(amount: int, price: int) -> int:
    """Amount received for `amount` surrendered at fixed-point `price` (floor)."""
    return (amount * price) // PRICE_SCALE


def split_fee(fee: int) -> Tuple[int, int]:
    """Fee share charged to (output_1, output_2); output_1 takes the odd unit."""
    return fee - fee // 2, fee // 2


def settle_swap(plaintext: SwapPlaintext, output_data: BatchSwapOutputData) -> Tuple[int, int]:
    """
    Output amounts (lambda_1 of asset_1, lambda_2 of asset_2) owed to one swap.

    A cleared batch pays t2 converted at price_2 in asset_1 and t1 converted at
    price_1 in asset_2. An uncleared batch refunds (t1, t2). The fee share is
    deducted from each output, saturating at zero; an output never exceeds
    u64, the largest note amount.
    """
    if plaintext.trading_pair != output_data.trading_pair:
        raise ValueError("plaintext and output data refer to different trading pairs")
    if output_data.cleared:
        gross_1 = convert(plaintext.t2, output_data.price_2)
        gross_2 = convert(plaintext.t1, output_data.price_1)
    else:
        gross_1, gross_2 = plaintext.t1, plaintext.t2
    fee_1, fee_2 = split_fee(plaintext.fee.amount)
    return min(max(gross_1 - fee_1, 0), U64_MAX), min(max(gross_2 - fee_2, 0), U64_MAX)
