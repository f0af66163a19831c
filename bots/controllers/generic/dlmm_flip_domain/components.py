from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class HeldToken(str, Enum):
    A = "A"
    B = "B"

    @property
    def other(self) -> "HeldToken":
        return HeldToken.B if self is HeldToken.A else HeldToken.A


class ControllerState(str, Enum):
    HOLDING_A = "HOLDING_A"
    HOLDING_B = "HOLDING_B"

    @classmethod
    def for_token(cls, token: HeldToken) -> "ControllerState":
        return cls.HOLDING_A if token is HeldToken.A else cls.HOLDING_B


class RebalancePhase(str, Enum):
    IDLE = "IDLE"
    # Withdrawal done, placement not yet confirmed.
    WITHDRAWN = "WITHDRAWN"


class StrategyError(Exception):
    """Base class for failures raised by the flip strategy."""


class PoolNotInitializedError(StrategyError):
    pass


class InsufficientBalanceError(StrategyError):
    def __init__(self, token: HeldToken, symbol: str, amount: int) -> None:
        super().__init__(f"insufficient {symbol} balance ({amount}), cannot add liquidity")
        self.token = token
        self.symbol = symbol
        self.amount = amount


class PositionIdExtractionError(StrategyError):
    def __init__(self, digest: str) -> None:
        super().__init__(f"could not extract position id from transaction {digest}")
        self.digest = digest


class WithdrawalError(StrategyError):
    pass


class PlacementError(StrategyError):
    pass


@dataclass(frozen=True)
class PriceReading:
    value: Decimal
    is_default: bool = False


@dataclass(frozen=True)
class BalanceSnapshot:
    amount_a: int
    amount_b: int

    def amount_of(self, token: HeldToken) -> int:
        return self.amount_a if token is HeldToken.A else self.amount_b


@dataclass(frozen=True)
class Pool:
    address: str
    active_id: int
    bin_step: int
    bin_manager_handle: str
    reward_coins: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, address: str, payload: Dict[str, Any]) -> "Pool":
        return cls(
            address=address,
            active_id=int(payload["activeId"]),
            bin_step=int(payload["binStep"]),
            bin_manager_handle=str(payload.get("binManagerHandle") or ""),
            reward_coins=[str(coin) for coin in payload.get("rewardCoins") or []],
        )


@dataclass(frozen=True)
class Position:
    position_id: str
    lower_bin_id: int
    upper_bin_id: int
    liquidity_shares: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, position_id: str, payload: Dict[str, Any]) -> "Position":
        return cls(
            position_id=position_id,
            lower_bin_id=int(payload["lowerBinId"]),
            upper_bin_id=int(payload["upperBinId"]),
            liquidity_shares=[str(share) for share in payload.get("liquidityShares") or []],
        )


@dataclass(frozen=True)
class TxResult:
    digest: str
    created: List[Dict[str, Any]] = field(default_factory=list)
    events: List[Dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TxResult":
        effects = payload.get("effects") or {}
        return cls(
            digest=str(payload.get("digest") or ""),
            created=list(effects.get("created") or []),
            events=list(effects.get("events") or payload.get("events") or []),
        )


@dataclass(frozen=True)
class PlacementResult:
    position_id: str
    bin_id: int
    token: HeldToken
    amount: int
    digest: str
    opened: bool


@dataclass
class PositionState:
    current_token: HeldToken = HeldToken.B
    current_position_id: Optional[str] = None
    current_bin_id: Optional[int] = None
    last_action_ts: float = 0.0
    total_profit: Decimal = Decimal("0")
    balances: Optional[BalanceSnapshot] = None
    rebalance_count: int = 0
    phase: RebalancePhase = RebalancePhase.IDLE
    pending_target_bin: Optional[int] = None
    pending_deposit_token: Optional[HeldToken] = None
    needs_rediscovery: bool = False

    @property
    def controller_state(self) -> ControllerState:
        return ControllerState.for_token(self.current_token)

    def clear_position(self) -> None:
        self.current_position_id = None
        self.current_bin_id = None

    def mark_withdrawn(self, target_bin: int, deposit_token: HeldToken) -> None:
        self.phase = RebalancePhase.WITHDRAWN
        self.pending_target_bin = target_bin
        self.pending_deposit_token = deposit_token

    def clear_pending(self) -> None:
        self.phase = RebalancePhase.IDLE
        self.pending_target_bin = None
        self.pending_deposit_token = None


@dataclass(frozen=True)
class Decision:
    should_rebalance: bool = False
    deposit_token: Optional[HeldToken] = None
    withdraw_only_a: Optional[bool] = None
    target_price: Optional[Decimal] = None
    reason: str = ""
