import asyncio
import logging
from decimal import Decimal
from typing import Callable, List, Optional

from .bin_math import BinMath
from .components import (
    BalanceSnapshot,
    Pool,
    PoolNotInitializedError,
    Position,
    PositionIdExtractionError,
    PriceReading,
    TxResult,
)

NEUTRAL_PRICE = Decimal("1.0")
_POSITION_OBJECT_MARKER = "position::Position"
_POSITION_CREATED_EVENT = "position::PositionCreated"


class PoolReader:
    """Fresh pool snapshots; every decision re-reads the pool."""

    def __init__(self, *, gateway, pool_address: Callable[[], Optional[str]]) -> None:
        self._gateway = gateway
        self._pool_address = pool_address

    async def fetch(self) -> Pool:
        address = self._pool_address()
        if not address:
            raise PoolNotInitializedError("pool address not initialized")
        payload = await self._gateway.get_pool(address)
        return Pool.from_payload(address, payload)


class PriceProvider:
    def __init__(
        self,
        *,
        config,
        pool_reader: PoolReader,
        logger: Callable[[], logging.Logger],
    ) -> None:
        self._config = config
        self._pool_reader = pool_reader
        self._logger = logger

    async def get_price(self) -> PriceReading:
        try:
            pool = await self._pool_reader.fetch()
            price = BinMath.price_from_bin_id(
                pool.active_id,
                pool.bin_step,
                self._config.decimals_a,
                self._config.decimals_b,
            )
            return PriceReading(value=BinMath.normalize_price(price))
        except Exception as exc:
            self._logger().error("price_read_failed | fallback=%s error=%s", NEUTRAL_PRICE, exc)
            return PriceReading(value=NEUTRAL_PRICE, is_default=True)

    def price_to_bin_id(self, price: Decimal) -> int:
        return BinMath.bin_id_from_price(
            price,
            self._config.bin_step,
            self._config.decimals_a,
            self._config.decimals_b,
            round_down=self._config.bin_rounding_min,
        )


class BalanceReader:
    def __init__(self, *, config, gateway, logger: Callable[[], logging.Logger]) -> None:
        self._config = config
        self._gateway = gateway
        self._logger = logger
        self._last_snapshot: Optional[BalanceSnapshot] = None

    @property
    def last_snapshot(self) -> Optional[BalanceSnapshot]:
        return self._last_snapshot

    async def read(self) -> Optional[BalanceSnapshot]:
        owner = self._config.sender_address
        try:
            amount_a, amount_b = await asyncio.gather(
                self._gateway.get_balance(owner, self._config.token_a),
                self._gateway.get_balance(owner, self._config.token_b),
            )
        except Exception as exc:
            self._logger().error("balance_read_failed | owner=%s error=%s", owner, exc)
            return None
        snapshot = BalanceSnapshot(amount_a=int(amount_a), amount_b=int(amount_b))
        self._last_snapshot = snapshot
        self._logger().info(
            "balance_snapshot | %s=%s %s=%s",
            self._config.token_a_symbol,
            snapshot.amount_a,
            self._config.token_b_symbol,
            snapshot.amount_b,
        )
        return snapshot


class PositionRegistry:
    def __init__(self, *, config, gateway, logger: Callable[[], logging.Logger]) -> None:
        self._config = config
        self._gateway = gateway
        self._logger = logger

    async def discover(self) -> List[str]:
        try:
            position_ids = await self._gateway.get_owned_objects(
                self._config.sender_address,
                self._config.position_struct_type,
            )
        except Exception as exc:
            self._logger().error("position_discovery_failed | owner=%s error=%s", self._config.sender_address, exc)
            return []
        self._logger().info("positions_discovered | count=%s", len(position_ids))
        return list(position_ids)

    async def fetch(self, position_id: str) -> Position:
        payload = await self._gateway.get_position(position_id)
        return Position.from_payload(position_id, payload)

    async def describe(self, position_id: str) -> Optional[Position]:
        try:
            return await self.fetch(position_id)
        except Exception as exc:
            self._logger().warning("position_read_failed | position_id=%s error=%s", position_id, exc)
            return None


def extract_position_id(result: TxResult) -> str:
    for obj in result.created:
        object_type = str(obj.get("objectType") or "")
        object_id = obj.get("objectId")
        if _POSITION_OBJECT_MARKER in object_type and object_id:
            return str(object_id)
    for event in result.events:
        event_type = str(event.get("type") or "")
        if not event_type.endswith(_POSITION_CREATED_EVENT):
            continue
        parsed = event.get("parsedJson") or {}
        position_id = event.get("positionId") or parsed.get("position_id") or parsed.get("positionId")
        if position_id:
            return str(position_id)
    raise PositionIdExtractionError(result.digest)
