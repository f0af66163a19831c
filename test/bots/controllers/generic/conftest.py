import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[4]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from bots.controllers.generic.dlmm_flip import DLMMFlipConfig  # noqa: E402

TOKEN_A = "0xa::usdc::USDC"
TOKEN_B = "0xb::usdt::USDT"
POSITION_TYPE = "0xdlmm::position::Position"


class FakeGateway:
    """In-memory stand-in for the DLMM gateway; records every call."""

    def __init__(self, *, active_id: int = 0, bin_step: int = 1, balance_a: int = 0, balance_b: int = 0):
        self.pool_address = "0xpool"
        self.pool: Dict[str, Any] = {
            "activeId": active_id,
            "binStep": bin_step,
            "binManagerHandle": "0xhandle",
            "rewardCoins": ["0xreward::r::R"],
        }
        self.balances = {TOKEN_A: balance_a, TOKEN_B: balance_b}
        self.owned: List[str] = []
        self.positions: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.fail: Dict[str, Exception] = {}
        self.submit_overrides: List[Dict[str, Any]] = []
        self.drain_on_add = True
        self._tx_count = 0
        self._last_add_calc: Optional[Dict[str, Any]] = None

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_of(self, name: str) -> List[Any]:
        return [args for call_name, args in self.calls if call_name == name]

    def _record(self, name: str, args: Any) -> None:
        self.calls.append((name, args))
        exc = self.fail.get(name)
        if exc is not None:
            raise exc

    async def get_pool_address(self, token_a, token_b, bin_step, base_factor):
        self._record("get_pool_address", (token_a, token_b, bin_step, base_factor))
        return self.pool_address

    async def get_pool(self, address):
        self._record("get_pool", address)
        return dict(self.pool)

    async def get_position(self, position_id):
        self._record("get_position", position_id)
        return dict(self.positions[position_id])

    async def get_bin_info(self, handle, bin_id, bin_step):
        self._record("get_bin_info", (handle, bin_id, bin_step))
        return {"binId": bin_id, "amountA": "0", "amountB": "0", "liquiditySupply": "0"}

    async def get_active_bin_if_in_range(self, handle, lower, upper, active_id, bin_step):
        self._record("get_active_bin_if_in_range", (handle, lower, upper, active_id, bin_step))
        if lower <= active_id <= upper:
            return {"amountA": "5", "amountB": "7"}
        return None

    async def parse_liquidity_shares(self, shares, bin_step, lower_bin_id, active_bin):
        self._record("parse_liquidity_shares", (shares, bin_step, lower_bin_id, active_bin))
        return {"bins": [{"binId": lower_bin_id + i, "liquidity": share} for i, share in enumerate(shares)]}

    async def calculate_add_liquidity(self, option):
        self._record("calculate_add_liquidity", option)
        self._last_add_calc = option
        return {"bins": [{"binId": option["lowerBinId"], "amount": option["coinAmount"]}]}

    async def calculate_remove_liquidity(self, option):
        self._record("calculate_remove_liquidity", option)
        return {"bins": option["bins"], "isOnlyA": option["isOnlyA"]}

    async def build_add_liquidity_payload(self, option):
        self._record("build_add_liquidity_payload", option)
        return {"kind": "add", "option": option}

    async def build_remove_liquidity_payload(self, option):
        self._record("build_remove_liquidity_payload", option)
        return {"kind": "remove", "option": option}

    async def build_collect_payload(self, options):
        self._record("build_collect_payload", options)
        return {"kind": "collect", "options": options}

    async def submit_transaction(self, payload):
        self._record("submit_transaction", payload)
        self._tx_count += 1
        digest = f"tx{self._tx_count}"
        if self.submit_overrides:
            return self.submit_overrides.pop(0)
        if payload.get("kind") == "add":
            option = payload["option"]
            calc = self._last_add_calc or {}
            if self.drain_on_add and calc:
                token = TOKEN_A if calc.get("fixAmountA") else TOKEN_B
                self.balances[token] = 0
            if "positionId" in option:
                return {"digest": digest, "effects": {"created": []}}
            position_id = f"0xpos{self._tx_count}"
            self.positions[position_id] = {
                "lowerBinId": option["lowerBinId"],
                "upperBinId": option["upperBinId"],
                "liquidityShares": ["100"],
            }
            self.owned.append(position_id)
            return {
                "digest": digest,
                "effects": {"created": [{"objectId": position_id, "objectType": POSITION_TYPE}]},
            }
        if payload.get("kind") == "remove":
            position_id = payload["option"]["positionId"]
            if position_id in self.owned:
                self.owned.remove(position_id)
        return {"digest": digest, "effects": {}}

    async def get_balance(self, owner, coin_type):
        self._record("get_balance", (owner, coin_type))
        return self.balances[coin_type]

    async def get_owned_objects(self, owner, struct_type):
        self._record("get_owned_objects", (owner, struct_type))
        return list(self.owned)


def make_config(**overrides) -> DLMMFlipConfig:
    values = dict(
        upper_price="1.0005",
        lower_price="0.9995",
        token_a=TOKEN_A,
        token_b=TOKEN_B,
        position_size=1_000_000,
        bin_step=1,
        sender_address="0xowner",
        pool_id="0xpool",
        position_struct_type=POSITION_TYPE,
        check_interval_ms=1000,
        slippage="0.001",
    )
    values.update(overrides)
    return DLMMFlipConfig(**values)


@pytest.fixture
def config() -> DLMMFlipConfig:
    return make_config()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def gateway_factory():
    return FakeGateway
