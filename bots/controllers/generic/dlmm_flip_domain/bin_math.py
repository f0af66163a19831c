from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_EVEN, Decimal
from typing import Optional

BASIS_POINT_MAX = Decimal("10000")
PRICE_DECIMALS = 6
_PRICE_QUANTUM = Decimal(1).scaleb(-PRICE_DECIMALS)
# Absorbs ln() rounding noise so an exact bin price maps back onto its own id.
_BIN_ID_QUANTUM = Decimal("1e-12")


class BinMath:
    @staticmethod
    def bin_base(bin_step: int) -> Decimal:
        if bin_step <= 0:
            raise ValueError(f"bin_step must be > 0, got {bin_step}")
        return Decimal("1") + Decimal(bin_step) / BASIS_POINT_MAX

    @staticmethod
    def price_from_bin_id(bin_id: int, bin_step: int, decimals_a: int, decimals_b: int) -> Decimal:
        raw = BinMath.bin_base(bin_step) ** int(bin_id)
        return raw.scaleb(decimals_a - decimals_b)

    @staticmethod
    def bin_id_from_price(
        price: Decimal,
        bin_step: int,
        decimals_a: int,
        decimals_b: int,
        *,
        round_down: bool,
    ) -> int:
        price = Decimal(str(price))
        if price <= 0:
            raise ValueError(f"price must be > 0, got {price}")
        raw = price.scaleb(decimals_b - decimals_a)
        exact = raw.ln() / BinMath.bin_base(bin_step).ln()
        exact = exact.quantize(_BIN_ID_QUANTUM, rounding=ROUND_HALF_EVEN)
        rounding = ROUND_FLOOR if round_down else ROUND_CEILING
        return int(exact.to_integral_value(rounding=rounding))

    @staticmethod
    def normalize_price(price: Optional[Decimal]) -> Optional[Decimal]:
        if price is None:
            return None
        return Decimal(str(price)).quantize(_PRICE_QUANTUM, rounding=ROUND_HALF_EVEN)
