import asyncio
import logging
import time
from decimal import Decimal
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .dlmm_flip_domain.components import (
    Decision,
    HeldToken,
    InsufficientBalanceError,
    PlacementResult,
    PositionIdExtractionError,
    PositionState,
    PriceReading,
    RebalancePhase,
)
from .dlmm_flip_domain.flip_fsm import FlipFSM
from .dlmm_flip_domain.io import BalanceReader, PoolReader, PositionRegistry, PriceProvider
from .dlmm_flip_domain.placement_engine import PlacementEngine
from .dlmm_flip_domain.withdrawal_engine import WithdrawalEngine

DEFAULT_TOKEN_A = "0xdba34672e30cb065b1f93e3ab55318768fd6fef66c15942c9f7cb846e2f900e7::usdc::USDC"
DEFAULT_TOKEN_B = "0x375f70cf2ae4c00bf37117d0c85a2c71545e6ee05c4a5c7d282cd66a4504b068::usdt::USDT"
DEFAULT_POSITION_STRUCT_TYPE = "0x5664f9d3fd82c84023870cfbda8ea84e14c8dd56ce557ad2116e0668581a682b::position::Position"


class DLMMFlipConfig(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)
    controller_name: str = "dlmm_flip"

    upper_price: Decimal = Decimal("1.0005")
    lower_price: Decimal = Decimal("0.9995")

    token_a: str = DEFAULT_TOKEN_A
    token_b: str = DEFAULT_TOKEN_B
    token_a_symbol: str = "USDC"
    token_b_symbol: str = "USDT"
    decimals_a: int = 6
    decimals_b: int = 6

    # Smallest units; only sizes withdrawals, placements always use the full balance.
    position_size: int = 1_000_000
    bin_step: int = 1
    base_factor: int = 10000
    bin_rounding_min: bool = False

    network: str = "mainnet"
    sender_address: str = ""
    pool_id: Optional[str] = None
    position_struct_type: str = DEFAULT_POSITION_STRUCT_TYPE

    check_interval_ms: int = 10000
    error_backoff_sec: float = 5.0
    slippage: Decimal = Decimal("0.001")
    default_held_token: HeldToken = HeldToken.B

    @field_validator("upper_price", "lower_price", mode="after")
    @classmethod
    def validate_price(cls, v):
        if v <= 0:
            raise ValueError("prices must be > 0")
        return v

    @field_validator("slippage", mode="after")
    @classmethod
    def validate_slippage(cls, v):
        if v < 0 or v >= 1:
            raise ValueError("slippage must be a ratio in [0, 1)")
        return v

    @field_validator("bin_step", "check_interval_ms", "position_size", mode="after")
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("pool_id", mode="before")
    @classmethod
    def blank_pool_id(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_band(self):
        if self.lower_price >= self.upper_price:
            raise ValueError(f"lower_price ({self.lower_price}) must be < upper_price ({self.upper_price})")
        if self.token_a == self.token_b:
            raise ValueError("token_a and token_b must differ")
        return self

    def symbol(self, token: HeldToken) -> str:
        return self.token_a_symbol if token is HeldToken.A else self.token_b_symbol


def load_config(path: Union[str, Path], **overrides) -> DLMMFlipConfig:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    data.update({k: v for k, v in overrides.items() if v is not None})
    return DLMMFlipConfig(**data)


class DLMMFlipController:
    _logger: Optional[logging.Logger] = None

    @classmethod
    def logger(cls) -> logging.Logger:
        if cls._logger is None:
            cls._logger = logging.getLogger(__name__)
        return cls._logger

    def __init__(
        self,
        config: DLMMFlipConfig,
        gateway,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self._gateway = gateway
        self._clock = clock
        self._sleep = sleep

        self._state = PositionState(current_token=config.default_held_token, last_action_ts=clock())
        self._running = False
        self._iteration_lock = asyncio.Lock()
        self._pool_address: Optional[str] = None
        self._last_price: Optional[PriceReading] = None

        self._pool_reader = PoolReader(gateway=gateway, pool_address=lambda: self._pool_address)
        self._price_provider = PriceProvider(config=config, pool_reader=self._pool_reader, logger=self.logger)
        self._balance_reader = BalanceReader(config=config, gateway=gateway, logger=self.logger)
        self._registry = PositionRegistry(config=config, gateway=gateway, logger=self.logger)
        self._withdrawal_engine = WithdrawalEngine(
            config=config,
            gateway=gateway,
            pool_reader=self._pool_reader,
            registry=self._registry,
            logger=self.logger,
        )
        self._placement_engine = PlacementEngine(
            config=config,
            gateway=gateway,
            pool_reader=self._pool_reader,
            balance_reader=self._balance_reader,
            logger=self.logger,
        )
        self._fsm = FlipFSM(config=config)

    @property
    def state(self) -> PositionState:
        return self._state

    @property
    def pool_address(self) -> Optional[str]:
        return self._pool_address

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True
        self.logger().info(
            "strategy_starting | pair=%s/%s band=%s..%s bin_step=%s",
            self.config.token_a_symbol,
            self.config.token_b_symbol,
            self.config.lower_price,
            self.config.upper_price,
            self.config.bin_step,
        )
        try:
            await self.initialize_pool()
        except Exception:
            self._running = False
            raise
        positions = await self._registry.discover()
        await self.resolve_initial_token(positions)
        await self.adopt_existing_position(positions)
        await self._monitoring_loop()

    def stop(self) -> None:
        self._running = False
        self.logger().info("strategy_stopping | in_flight=%s", self._iteration_lock.locked())

    async def initialize_pool(self) -> str:
        if self.config.pool_id:
            self._pool_address = self.config.pool_id
            self.logger().info("pool_configured | address=%s", self._pool_address)
            return self._pool_address
        try:
            self._pool_address = await self._gateway.get_pool_address(
                self.config.token_a,
                self.config.token_b,
                self.config.bin_step,
                self.config.base_factor,
            )
        except Exception:
            self.logger().exception(
                "pool_resolution_failed | token_a=%s token_b=%s bin_step=%s",
                self.config.token_a,
                self.config.token_b,
                self.config.bin_step,
            )
            raise
        self.logger().info("pool_resolved | address=%s", self._pool_address)
        return self._pool_address

    async def resolve_initial_token(self, positions: List[str]) -> HeldToken:
        balances = await self._balance_reader.read()
        if balances is None:
            if positions:
                self.logger().warning(
                    "initial_token_kept | reason=balance_unavailable positions=%s token=%s",
                    len(positions),
                    self.config.symbol(self._state.current_token),
                )
            else:
                self._state.current_token = self.config.default_held_token
                self.logger().warning(
                    "initial_token_default | reason=balance_unavailable token=%s",
                    self.config.symbol(self._state.current_token),
                )
            return self._state.current_token

        self._state.balances = balances
        if balances.amount_a > balances.amount_b:
            self._state.current_token = HeldToken.A
            reason = "larger_balance"
        elif balances.amount_b > balances.amount_a:
            self._state.current_token = HeldToken.B
            reason = "larger_balance"
        else:
            self._state.current_token = self.config.default_held_token
            reason = "tie_default"
        self.logger().info(
            "initial_token_resolved | token=%s reason=%s %s=%s %s=%s",
            self.config.symbol(self._state.current_token),
            reason,
            self.config.token_a_symbol,
            balances.amount_a,
            self.config.token_b_symbol,
            balances.amount_b,
        )
        return self._state.current_token

    async def adopt_existing_position(self, positions: List[str]) -> Optional[str]:
        if not positions:
            return None
        if len(positions) > 1:
            self.logger().warning(
                "multiple_positions_found | count=%s adopting=%s ignored=%s",
                len(positions),
                positions[0],
                ",".join(positions[1:]),
            )
        position_id = positions[0]
        self._state.current_position_id = position_id
        position = await self._registry.describe(position_id)
        if position is not None:
            self._state.current_bin_id = position.lower_bin_id
            self.logger().info(
                "position_adopted | position_id=%s bins=%s..%s",
                position_id,
                position.lower_bin_id,
                position.upper_bin_id,
            )
        else:
            self.logger().warning("position_adopted | position_id=%s bins=unknown", position_id)
        return position_id

    async def _monitoring_loop(self) -> None:
        interval = self.config.check_interval_ms / 1000
        while self._running:
            try:
                await self.run_once()
                await self._sleep(interval)
            except Exception:
                self.logger().exception(
                    "monitoring_loop_error | token=%s position_id=%s phase=%s backoff=%s",
                    self.config.symbol(self._state.current_token),
                    self._state.current_position_id,
                    self._state.phase.value,
                    self.config.error_backoff_sec,
                )
                await self._sleep(self.config.error_backoff_sec)
        self.logger().info("strategy_stopped | rebalances=%s", self._state.rebalance_count)

    async def run_once(self) -> Optional[Decision]:
        if self._iteration_lock.locked():
            self.logger().warning("iteration_skipped | reason=in_flight")
            return None
        async with self._iteration_lock:
            if self._state.needs_rediscovery:
                await self._rediscover_position()
            if self._state.phase is RebalancePhase.WITHDRAWN:
                self.logger().info(
                    "placement_resume | bin=%s side=%s",
                    self._state.pending_target_bin,
                    self.config.symbol(self._state.pending_deposit_token),
                )
                await self._complete_placement(self._state.pending_target_bin, self._state.pending_deposit_token)
                return None

            reading = await self._price_provider.get_price()
            self._last_price = reading
            decision = self._fsm.evaluate(reading, self._state.current_token)
            self.logger().info(
                "price_check | price=%s default=%s state=%s decision=%s",
                reading.value,
                reading.is_default,
                self._state.controller_state.value,
                decision.reason,
            )
            if decision.should_rebalance:
                await self._execute_rebalance(decision)
            return decision

    async def _rediscover_position(self) -> None:
        positions = await self._registry.discover()
        if not positions:
            self.logger().warning("position_rediscovery_empty | token=%s", self.config.symbol(self._state.current_token))
            return
        await self.adopt_existing_position(positions)
        self._state.needs_rediscovery = False

    async def _execute_rebalance(self, decision: Decision) -> None:
        target_bin = self._price_provider.price_to_bin_id(decision.target_price)
        self.logger().info(
            "rebalance_start | reason=%s withdraw_side=%s deposit_side=%s target_price=%s bin=%s position_id=%s",
            decision.reason,
            self.config.token_a_symbol if decision.withdraw_only_a else self.config.token_b_symbol,
            self.config.symbol(decision.deposit_token),
            decision.target_price,
            target_bin,
            self._state.current_position_id,
        )
        if self._state.current_position_id:
            await self._withdrawal_engine.withdraw(self._state.current_position_id, decision.withdraw_only_a)
            self._state.clear_position()
            self._state.last_action_ts = self._clock()
            self._state.mark_withdrawn(target_bin, decision.deposit_token)
        await self._complete_placement(target_bin, decision.deposit_token)

    async def _complete_placement(self, target_bin: int, deposit_token: HeldToken) -> PlacementResult:
        try:
            result = await self._placement_engine.place(target_bin, deposit_token, self._state.current_position_id)
        except InsufficientBalanceError:
            # Nothing to redeposit; drop any pending placement so the next iteration
            # goes back to the price check.
            if self._state.phase is RebalancePhase.WITHDRAWN:
                self.logger().warning(
                    "placement_abandoned | bin=%s side=%s reason=insufficient_balance",
                    target_bin,
                    self.config.symbol(deposit_token),
                )
            self._state.clear_pending()
            raise
        except PositionIdExtractionError:
            # The deposit landed on-chain; only its id is unknown. Flip and let the
            # registry recover the id instead of retrying the placement.
            self._state.clear_position()
            self._state.current_token = deposit_token.other
            self._state.last_action_ts = self._clock()
            self._state.clear_pending()
            self._state.needs_rediscovery = True
            raise
        finally:
            self._state.balances = self._balance_reader.last_snapshot or self._state.balances

        self._state.current_position_id = result.position_id
        self._state.current_bin_id = result.bin_id
        self._state.current_token = deposit_token.other
        self._state.last_action_ts = self._clock()
        self._state.rebalance_count += 1
        self._state.total_profit += self._estimate_profit(result)
        self._state.clear_pending()
        self.logger().info(
            "rebalance_done | state=%s position_id=%s bin=%s deposited=%s %s estimated_profit=%s",
            self._state.controller_state.value,
            result.position_id,
            result.bin_id,
            result.amount,
            self.config.symbol(result.token),
            self._state.total_profit,
        )
        return result

    def _estimate_profit(self, result: PlacementResult) -> Decimal:
        # Advisory: the band spread on the deposited notional, assuming the bin fills.
        decimals = self.config.decimals_a if result.token is HeldToken.A else self.config.decimals_b
        notional = Decimal(result.amount).scaleb(-decimals)
        return notional * (self.config.upper_price - self.config.lower_price)

    def get_status(self) -> Dict[str, Any]:
        state = self._state
        return {
            **self.config.model_dump(mode="json"),
            "pool_address": self._pool_address,
            "running": self._running,
            "state": state.controller_state.value,
            "current_token": self.config.symbol(state.current_token),
            "current_position_id": state.current_position_id,
            "current_bin_id": state.current_bin_id,
            "last_action_ts": state.last_action_ts,
            "total_profit": str(state.total_profit),
            "rebalance_count": state.rebalance_count,
            "phase": state.phase.value,
            "pending_target_bin": state.pending_target_bin,
            "current_balance": None if state.balances is None else {
                self.config.token_a_symbol.lower(): str(state.balances.amount_a),
                self.config.token_b_symbol.lower(): str(state.balances.amount_b),
            },
            "last_price": None if self._last_price is None else str(self._last_price.value),
        }

    async def price_explanation(self) -> str:
        pair = f"{self.config.token_a_symbol}/{self.config.token_b_symbol}"
        reading = await self._price_provider.get_price()
        price = "unavailable" if reading.is_default else str(reading.value)
        a, b = self.config.token_a_symbol, self.config.token_b_symbol
        return "\n".join([
            "Price explanation:",
            f"- Current price: {price} ({pair})",
            f"- Price > 1: {a} appreciates against {b}",
            f"- Price < 1: {a} depreciates against {b}",
            f"- Currently holding: {self.config.symbol(self._state.current_token)}",
            f"- Strategy band: {self.config.lower_price} - {self.config.upper_price}",
        ])
