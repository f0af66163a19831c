"""
DLMM gateway client.

The gateway is a sidecar service that wraps the DLMM SDK and the chain client:
it owns the signing key, the bin-liquidity math and payload encoding. This
client only speaks its REST API.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)


@dataclass
class GatewayError(Exception):
    """Gateway request error."""

    status_code: int
    message: str

    def __str__(self) -> str:
        return f"gateway error {self.status_code}: {self.message}"


class DLMMGatewayClient:
    def __init__(
        self,
        base_url: str,
        *,
        network: str = "mainnet",
        timeout_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.network = network
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout_seconds)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DLMMGatewayClient":
        return self

    async def __aexit__(self, *_exc) -> None:
        await self.close()

    # Pool / position reads

    async def get_pool_address(self, token_a: str, token_b: str, bin_step: int, base_factor: int) -> str:
        response = await self._request(
            "GET",
            "dlmm/pool-address",
            params={"tokenA": token_a, "tokenB": token_b, "binStep": bin_step, "baseFactor": base_factor},
        )
        address = (response or {}).get("address")
        if not address:
            raise GatewayError(404, f"no pool for {token_a}/{token_b} bin_step={bin_step}")
        return str(address)

    async def get_pool(self, pool_address: str) -> Dict[str, Any]:
        return await self._request("GET", "dlmm/pool", params={"address": pool_address})

    async def get_position(self, position_id: str) -> Dict[str, Any]:
        return await self._request("GET", "dlmm/position", params={"positionId": position_id})

    async def get_bin_info(self, bin_manager_handle: str, bin_id: int, bin_step: int) -> Dict[str, Any]:
        return await self._request(
            "GET",
            "dlmm/bin",
            params={"binManagerHandle": bin_manager_handle, "binId": bin_id, "binStep": bin_step},
        )

    async def get_active_bin_if_in_range(
        self,
        bin_manager_handle: str,
        lower_bin_id: int,
        upper_bin_id: int,
        active_id: int,
        bin_step: int,
    ) -> Optional[Dict[str, Any]]:
        response = await self._request(
            "GET",
            "dlmm/active-bin-amounts",
            params={
                "binManagerHandle": bin_manager_handle,
                "lowerBinId": lower_bin_id,
                "upperBinId": upper_bin_id,
                "activeId": active_id,
                "binStep": bin_step,
            },
        )
        return response or None

    # Liquidity math

    async def parse_liquidity_shares(
        self,
        liquidity_shares: List[str],
        bin_step: int,
        lower_bin_id: int,
        active_bin: Dict[str, Any],
    ) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "dlmm/liquidity-shares/parse",
            json={
                "liquidityShares": liquidity_shares,
                "binStep": bin_step,
                "lowerBinId": lower_bin_id,
                "activeBin": active_bin,
            },
        )

    async def calculate_add_liquidity(self, option: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "dlmm/liquidity/add/calculate", json=option)

    async def calculate_remove_liquidity(self, option: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "dlmm/liquidity/remove/calculate", json=option)

    # Payload builders

    async def build_add_liquidity_payload(self, option: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "dlmm/payload/add-liquidity", json=option)

    async def build_remove_liquidity_payload(self, option: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "dlmm/payload/remove-liquidity", json=option)

    async def build_collect_payload(self, options: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._request("POST", "dlmm/payload/collect", json={"positions": options})

    # Chain

    async def submit_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "POST",
            "chain/transactions",
            json={"network": self.network, "transaction": payload, "options": {"showEffects": True}},
        )

    async def get_balance(self, owner: str, coin_type: str) -> int:
        response = await self._request("GET", "chain/balance", params={"owner": owner, "coinType": coin_type})
        return int((response or {}).get("totalBalance") or 0)

    async def get_owned_objects(self, owner: str, struct_type: str) -> List[str]:
        response = await self._request(
            "GET",
            "chain/owned-objects",
            params={"owner": owner, "structType": struct_type},
        )
        object_ids = []
        for item in (response or {}).get("data") or []:
            object_id = (item.get("data") or {}).get("objectId") or item.get("objectId")
            if object_id:
                object_ids.append(str(object_id))
        return object_ids

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        if params:
            params = {"network": self.network, **params}
        try:
            response = await self._client.request(method, f"/{path.lstrip('/')}", params=params, json=json)
        except httpx.HTTPError as exc:
            raise GatewayError(0, f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise GatewayError(response.status_code, response.text)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError(response.status_code, f"non-JSON response from {path}: {response.text[:200]}") from exc
