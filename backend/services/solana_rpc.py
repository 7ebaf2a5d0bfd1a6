"""Minimal Solana JSON-RPC client over HTTP.

Only the read calls the position engine needs. Every failure, whether
transport, HTTP status, malformed payload or a JSON-RPC error object, is
raised as :class:`RpcError` carrying the endpoint, so the connection pool can
rotate without caring which layer broke.
"""

import itertools
from typing import Optional

import httpx

from services.errors import RpcError, exception_text

LAMPORTS_PER_SOL = 1_000_000_000


class SolanaRpcClient:
    def __init__(
        self,
        endpoint: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoint = endpoint
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def _request(self, method: str, params: Optional[list] = None):
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        try:
            response = await self._client.post(self.endpoint, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RpcError(
                f"{method} failed: {exception_text(e)}", endpoint=self.endpoint
            ) from e

        if not isinstance(body, dict):
            raise RpcError(f"{method} returned a non-object payload", endpoint=self.endpoint)

        error = body.get("error")
        if error:
            if isinstance(error, dict):
                raise RpcError(
                    f"{method}: {error.get('message', 'unknown error')}",
                    endpoint=self.endpoint,
                    code=error.get("code"),
                )
            raise RpcError(f"{method}: {error}", endpoint=self.endpoint)

        if "result" not in body:
            raise RpcError(f"{method} response has no result", endpoint=self.endpoint)
        return body["result"]

    async def get_balance(self, address: str) -> int:
        """Native balance in lamports"""
        result = await self._request("getBalance", [address])
        if isinstance(result, dict):
            result = result.get("value")
        if not isinstance(result, int):
            raise RpcError("getBalance returned no value", endpoint=self.endpoint)
        return result

    async def get_token_accounts_by_owner(self, owner: str, program_id: str) -> list[dict]:
        """Token accounts of ``owner`` under one token program, jsonParsed."""
        result = await self._request(
            "getTokenAccountsByOwner",
            [owner, {"programId": program_id}, {"encoding": "jsonParsed"}],
        )
        value = result.get("value") if isinstance(result, dict) else None
        if not isinstance(value, list):
            raise RpcError("getTokenAccountsByOwner returned no value", endpoint=self.endpoint)
        return value

    async def get_latest_blockhash(self) -> str:
        result = await self._request("getLatestBlockhash", [{"commitment": "finalized"}])
        value = result.get("value") if isinstance(result, dict) else None
        blockhash = value.get("blockhash") if isinstance(value, dict) else None
        if not blockhash:
            raise RpcError("getLatestBlockhash returned no blockhash", endpoint=self.endpoint)
        return blockhash

    async def get_token_supply(self, mint: str) -> float:
        """Total supply of ``mint`` in whole tokens"""
        result = await self._request("getTokenSupply", [mint])
        value = result.get("value") if isinstance(result, dict) else None
        if not isinstance(value, dict):
            raise RpcError("getTokenSupply returned no value", endpoint=self.endpoint)

        ui_amount = value.get("uiAmount")
        if ui_amount is not None:
            return float(ui_amount)
        try:
            return int(value["amount"]) / (10 ** int(value.get("decimals", 0)))
        except (KeyError, TypeError, ValueError) as e:
            raise RpcError(
                f"getTokenSupply returned an unreadable amount: {exception_text(e)}",
                endpoint=self.endpoint,
            ) from e

    async def aclose(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()
