"""EVM JSON-RPC chain client.

Talks to any Ethereum-compatible node (Alchemy, public dataseed) over
HTTP. Only the two read calls the verifier needs are implemented.
"""

import itertools
import logging
from typing import Any

import httpx

from app.core.exceptions import ExternalServiceError
from app.gateways.base import ChainClient, ReceiptLog, TransactionReceipt

logger = logging.getLogger(__name__)


def _hex_to_int(value: str | None) -> int:
    if not value:
        return 0
    return int(value, 16)


def _parse_receipt(raw: dict[str, Any]) -> TransactionReceipt:
    logs = [
        ReceiptLog(
            address=log.get("address", ""),
            topics=list(log.get("topics") or []),
            data=log.get("data") or "0x",
        )
        for log in raw.get("logs") or []
    ]
    return TransactionReceipt(
        status=_hex_to_int(raw.get("status")) == 1,
        block_number=_hex_to_int(raw.get("blockNumber")),
        from_address=(raw.get("from") or "").lower(),
        to_address=(raw.get("to") or None),
        gas_used=_hex_to_int(raw.get("gasUsed")),
        logs=logs,
    )


class JsonRpcChainClient(ChainClient):
    """JSON-RPC client bound to one chain."""

    def __init__(
        self,
        chain_id: int,
        rpc_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._chain_id = chain_id
        self.rpc_url = rpc_url
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def chain_id(self) -> int:
        return self._chain_id

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"RPC {method} on chain {self._chain_id} failed: {e}")
            raise ExternalServiceError(f"rpc:{self._chain_id}", str(e)) from e

        if body.get("error"):
            error = body["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            logger.warning(f"RPC {method} on chain {self._chain_id} returned error: {message}")
            raise ExternalServiceError(f"rpc:{self._chain_id}", message)

        return body.get("result")

    async def get_transaction_receipt(self, tx_hash: str) -> TransactionReceipt | None:
        raw = await self._call("eth_getTransactionReceipt", [tx_hash])
        if raw is None:
            return None
        return _parse_receipt(raw)

    async def get_block_number(self) -> int:
        return _hex_to_int(await self._call("eth_blockNumber", []))

    async def close(self) -> None:
        await self._client.aclose()
