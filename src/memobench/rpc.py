# memobench/rpc.py
"""
Minimal async JSON-RPC client for the handful of Solana methods the benchmark needs.

Errors are classified so callers can tell a node rejecting a request (RpcError)
from the request never getting a usable answer (TransportError).
"""
import base64
import itertools
import logging
from typing import Any

import httpx

import memobench.constants as C

log = logging.getLogger("memobench.rpc")


class TransportError(Exception):
    """HTTP, network or decoding failure below the JSON-RPC layer."""


class RpcError(Exception):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, code: int | None, message: str, data: Any = None):
        super().__init__(f"{message} (code {code})")
        self.code = code
        self.message = message
        self.data = data


class SolanaRpc:
    def __init__(self, url: str, *, timeout: float = C.RPC_TIMEOUT, client: httpx.AsyncClient | None = None):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def __aenter__(self) -> "SolanaRpc":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def call(self, method: str, params: list | None = None) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            r = await self._client.post(self.url, json=payload)
            r.raise_for_status()
            body = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise TransportError(f"{method} to {self.url} failed: {e.__class__.__name__} - {e}") from e
        if not isinstance(body, dict):
            raise TransportError(f"{method} response is not a JSON object: {str(body)[:200]}")

        error = body.get("error")
        if isinstance(error, dict):
            raise RpcError(error.get("code"), error.get("message", ""), error.get("data"))
        if error:
            raise RpcError(None, str(error))
        if "result" not in body:
            raise TransportError(f"{method} response missing 'result': {body}")
        return body["result"]

    async def get_latest_blockhash(self, commitment: C.Commitment = C.Commitment.FINALIZED) -> str:
        result = await self.call("getLatestBlockhash", [{"commitment": str(commitment)}])
        try:
            return str(result["value"]["blockhash"])
        except (KeyError, TypeError) as e:
            raise TransportError(f"getLatestBlockhash returned an unexpected result: {result}") from e

    async def get_balance(self, pubkey: str, commitment: C.Commitment = C.Commitment.FINALIZED) -> int:
        """Balance in lamports."""
        result = await self.call("getBalance", [pubkey, {"commitment": str(commitment)}])
        try:
            return int(result["value"])
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"getBalance returned an unexpected result: {result}") from e

    async def send_transaction(
        self,
        raw: bytes,
        *,
        skip_preflight: bool = True,
        max_retries: int | None = None,
    ) -> str:
        """Submit a signed transaction, returning its signature."""
        opts: dict[str, Any] = {"encoding": "base64", "skipPreflight": skip_preflight}
        if max_retries is not None:
            opts["maxRetries"] = max_retries
        encoded = base64.b64encode(raw).decode()
        return await self.call("sendTransaction", [encoded, opts])
