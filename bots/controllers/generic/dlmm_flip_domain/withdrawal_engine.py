import logging
from typing import Callable

from .components import TxResult, WithdrawalError
from .io import PoolReader, PositionRegistry


class WithdrawalEngine:
    def __init__(
        self,
        *,
        config,
        gateway,
        pool_reader: PoolReader,
        registry: PositionRegistry,
        logger: Callable[[], logging.Logger],
    ) -> None:
        self._config = config
        self._gateway = gateway
        self._pool_reader = pool_reader
        self._registry = registry
        self._logger = logger

    async def collect_fees_and_rewards(self, position_id: str) -> None:
        """Best-effort fee and reward claim; never raises."""
        try:
            pool = await self._pool_reader.fetch()
            payload = await self._gateway.build_collect_payload([
                {
                    "poolId": pool.address,
                    "positionId": position_id,
                    "rewardCoins": list(pool.reward_coins),
                    "coinTypeA": self._config.token_a,
                    "coinTypeB": self._config.token_b,
                }
            ])
            result = TxResult.from_payload(await self._gateway.submit_transaction(payload))
            self._logger().info("fees_collected | position_id=%s digest=%s", position_id, result.digest)
        except Exception as exc:
            self._logger().warning("fee_collect_failed | position_id=%s error=%s", position_id, exc)

    async def withdraw(self, position_id: str, is_only_a: bool) -> TxResult:
        await self.collect_fees_and_rewards(position_id)

        side = self._config.token_a_symbol if is_only_a else self._config.token_b_symbol
        amount = self._config.position_size
        try:
            position = await self._registry.fetch(position_id)
            pool = await self._pool_reader.fetch()
            active_bin = await self._gateway.get_bin_info(pool.bin_manager_handle, pool.active_id, pool.bin_step)
            shares = await self._gateway.parse_liquidity_shares(
                position.liquidity_shares,
                pool.bin_step,
                position.lower_bin_id,
                active_bin,
            )
            bin_infos = await self._gateway.calculate_remove_liquidity({
                "bins": (shares or {}).get("bins") or [],
                "activeId": pool.active_id,
                "isOnlyA": is_only_a,
                "coinAmount": str(amount),
            })
            payload = await self._gateway.build_remove_liquidity_payload({
                "poolId": pool.address,
                "positionId": position_id,
                "activeId": pool.active_id,
                "binStep": self._config.bin_step,
                "binInfos": bin_infos,
                "slippage": str(self._config.slippage),
                "coinTypeA": self._config.token_a,
                "coinTypeB": self._config.token_b,
                "collectFee": True,
                "rewardCoins": [],
            })
            result = TxResult.from_payload(await self._gateway.submit_transaction(payload))
        except Exception as exc:
            self._logger().error(
                "withdraw_failed | position_id=%s side=%s amount=%s error=%s",
                position_id,
                side,
                amount,
                exc,
            )
            raise WithdrawalError(f"withdraw {side} from {position_id} failed: {exc}") from exc

        self._logger().info(
            "withdraw_done | position_id=%s bins=%s..%s side=%s amount=%s digest=%s",
            position_id,
            position.lower_bin_id,
            position.upper_bin_id,
            side,
            amount,
            result.digest,
        )
        return result
