from decimal import Decimal
from typing import Optional

from .components import Decision, HeldToken, PriceReading


class FlipFSM:
    """Guarded two-state transition function for the flip strategy.

    HOLDING_B exits on price <= lower_price and redeposits B at the lower bound.
    HOLDING_A exits on price >= upper_price and redeposits A at the upper bound.
    Both boundaries are inclusive on breach. The withdrawal side is always the
    held token, since that is the asset the next placement redeposits.
    """

    def __init__(self, *, config) -> None:
        self._config = config

    def evaluate(self, reading: Optional[PriceReading], current_token: HeldToken) -> Decision:
        if reading is None or reading.is_default:
            return Decision(reason="price_unavailable")
        price = reading.value
        if price is None or price <= 0:
            return Decision(reason="price_invalid")

        if current_token is HeldToken.B:
            if self._breached_lower(price):
                return Decision(
                    should_rebalance=True,
                    deposit_token=HeldToken.B,
                    withdraw_only_a=False,
                    target_price=self._config.lower_price,
                    reason="lower_breach",
                )
            return Decision(reason="in_band")

        if self._breached_upper(price):
            return Decision(
                should_rebalance=True,
                deposit_token=HeldToken.A,
                withdraw_only_a=True,
                target_price=self._config.upper_price,
                reason="upper_breach",
            )
        return Decision(reason="in_band")

    def _breached_lower(self, price: Decimal) -> bool:
        return price <= self._config.lower_price

    def _breached_upper(self, price: Decimal) -> bool:
        return price >= self._config.upper_price
