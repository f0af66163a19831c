import logging
from typing import Any, Callable, Dict, Optional

from .components import (
    HeldToken,
    InsufficientBalanceError,
    PlacementError,
    PlacementResult,
    PositionIdExtractionError,
    TxResult,
)
from .io import BalanceReader, PoolReader, extract_position_id

SPOT_STRATEGY = 0


class PlacementEngine:
    """Single-sided, single-bin deposits of the full balance of one token."""

    def __init__(
        self,
        *,
        config,
        gateway,
        pool_reader: PoolReader,
        balance_reader: BalanceReader,
        logger: Callable[[], logging.Logger],
    ) -> None:
        self._config = config
        self._gateway = gateway
        self._pool_reader = pool_reader
        self._balance_reader = balance_reader
        self._logger = logger

    def _symbol(self, token: HeldToken) -> str:
        return self._config.token_a_symbol if token is HeldToken.A else self._config.token_b_symbol

    async def place(
        self,
        target_bin: int,
        deposit_token: HeldToken,
        position_id: Optional[str] = None,
    ) -> PlacementResult:
        symbol = self._symbol(deposit_token)
        balances = await self._balance_reader.read()
        if balances is None:
            raise PlacementError(f"{symbol} balance unavailable, cannot add liquidity at bin {target_bin}")
        amount = balances.amount_of(deposit_token)
        if amount <= 0:
            raise InsufficientBalanceError(deposit_token, symbol, amount)

        try:
            pool = await self._pool_reader.fetch()
            in_active_bin = await self._gateway.get_active_bin_if_in_range(
                pool.bin_manager_handle,
                target_bin,
                target_bin,
                pool.active_id,
                self._config.bin_step,
            )
            bin_infos = await self._gateway.calculate_add_liquidity(
                self._calculate_option(amount, deposit_token, target_bin, pool.active_id, in_active_bin)
            )
            if position_id:
                option = self._add_option(pool.address, pool.active_id, bin_infos, position_id)
            else:
                option = self._open_option(pool.address, pool.active_id, bin_infos, target_bin)
            payload = await self._gateway.build_add_liquidity_payload(option)
            result = TxResult.from_payload(await self._gateway.submit_transaction(payload))
        except Exception as exc:
            self._logger().error(
                "add_liquidity_failed | bin=%s side=%s amount=%s position_id=%s error=%s",
                target_bin,
                symbol,
                amount,
                position_id,
                exc,
            )
            raise PlacementError(f"add {amount} {symbol} at bin {target_bin} failed: {exc}") from exc

        if position_id:
            self._logger().info(
                "liquidity_added | position_id=%s bin=%s side=%s amount=%s digest=%s",
                position_id,
                target_bin,
                symbol,
                amount,
                result.digest,
            )
            return PlacementResult(position_id, target_bin, deposit_token, amount, result.digest, opened=False)

        try:
            new_position_id = extract_position_id(result)
        except PositionIdExtractionError:
            self._logger().error(
                "position_id_extraction_failed | bin=%s side=%s amount=%s digest=%s",
                target_bin,
                symbol,
                amount,
                result.digest,
            )
            raise
        self._logger().info(
            "position_opened | position_id=%s bin=%s side=%s amount=%s digest=%s",
            new_position_id,
            target_bin,
            symbol,
            amount,
            result.digest,
        )
        return PlacementResult(new_position_id, target_bin, deposit_token, amount, result.digest, opened=True)

    def _calculate_option(
        self,
        amount: int,
        deposit_token: HeldToken,
        target_bin: int,
        active_id: int,
        in_active_bin: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        in_active_bin = in_active_bin or {}
        return {
            "coinAmount": str(amount),
            "fixAmountA": deposit_token is HeldToken.A,
            "activeId": active_id,
            "binStep": self._config.bin_step,
            "lowerBinId": target_bin,
            "upperBinId": target_bin,
            "amountAInActiveBin": str(in_active_bin.get("amountA") or "0"),
            "amountBInActiveBin": str(in_active_bin.get("amountB") or "0"),
            "strategyType": SPOT_STRATEGY,
        }

    def _add_option(self, pool_id: str, active_id: int, bin_infos, position_id: str) -> Dict[str, Any]:
        return {
            "poolId": pool_id,
            "binInfos": bin_infos,
            "coinTypeA": self._config.token_a,
            "coinTypeB": self._config.token_b,
            "activeId": active_id,
            "positionId": position_id,
            "collectFee": True,
            "rewardCoins": [],
            "strategyType": SPOT_STRATEGY,
            "useBinInfos": False,
            "maxPriceSlippage": str(self._config.slippage),
            "binStep": self._config.bin_step,
        }

    def _open_option(self, pool_id: str, active_id: int, bin_infos, target_bin: int) -> Dict[str, Any]:
        return {
            "poolId": pool_id,
            "binInfos": bin_infos,
            "coinTypeA": self._config.token_a,
            "coinTypeB": self._config.token_b,
            "lowerBinId": target_bin,
            "upperBinId": target_bin,
            "activeId": active_id,
            "strategyType": SPOT_STRATEGY,
            "useBinInfos": False,
            "maxPriceSlippage": str(self._config.slippage),
            "binStep": self._config.bin_step,
        }
