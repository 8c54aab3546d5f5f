"""
HTTP providers: Blockchair, Zerdinals and a zcashd-compatible JSON-RPC node.
"""

from __future__ import annotations

import re
from typing import Any

import httpx
from loguru import logger

from zinscore.models import FundingInput, Outpoint
from zinscriber.providers.base import Broadcaster, ChainInfo, InscriptionIndex, UtxoIndex

DEFAULT_HTTP_TIMEOUT = 8.0

ZATS_PER_ZEC = 100_000_000

# Keys searched, in order, for a transaction id in broadcast responses
TXID_KEYS = (
    "txid",
    "txId",
    "result",
    "data",
    "hash",
    "transaction_hash",
    "tx_hash",
    "transactionId",
)

TXID_RE = re.compile(r"\b[0-9a-fA-F]{64}\b")

# Hex of the envelope marker "ord"
ENVELOPE_MARKER_HEX = "6f7264"


def _is_txid(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 64 and TXID_RE.fullmatch(value) is not None


def extract_txid(payload: Any, _depth: int = 0) -> str | None:
    """
    Find a transaction id in an arbitrarily shaped JSON response.

    Well-known keys are searched first at each level, then every other value.
    """
    if _depth > 8:
        return None
    if _is_txid(payload):
        return payload.lower()
    if isinstance(payload, dict):
        for key in TXID_KEYS:
            if key in payload:
                found = extract_txid(payload[key], _depth + 1)
                if found:
                    return found
        for key, value in payload.items():
            if key in TXID_KEYS:
                continue
            found = extract_txid(value, _depth + 1)
            if found:
                return found
    elif isinstance(payload, list):
        for item in payload:
            found = extract_txid(item, _depth + 1)
            if found:
                return found
    return None


def txid_from_response(response: httpx.Response) -> str:
    """Extract a txid from a successful broadcast response, JSON or plain text."""
    text = response.text
    try:
        found = extract_txid(response.json())
    except ValueError:
        found = None
    if found is None:
        match = TXID_RE.search(text)
        found = match.group(0).lower() if match else None
    if found is None:
        raise ValueError(f"No txid in response: {text[:200]}")
    return found


def normalize_value(raw: Any) -> int:
    """
    Convert an index-reported amount to zatoshis.

    Explorers disagree on units: integers are zatoshis, fractional values
    (or decimal strings) are ZEC.
    """
    if isinstance(raw, bool) or raw is None:
        raise ValueError(f"Invalid amount: {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if 0 < raw < 1 or not raw.is_integer():
            return round(raw * ZATS_PER_ZEC)
        return int(raw)
    if isinstance(raw, str):
        amount = float(raw)
        if "." in raw or 0 < amount < 1:
            return round(amount * ZATS_PER_ZEC)
        return int(amount)
    raise ValueError(f"Invalid amount: {raw!r}")


def parse_funding_input(entry: dict[str, Any], address: str) -> FundingInput:
    txid = (
        entry.get("transaction_hash")
        or entry.get("txid")
        or entry.get("hash")
        or entry.get("tx_hash")
    )
    vout = entry.get("index", entry.get("vout", entry.get("n", 0)))
    raw_value = entry.get("value", entry.get("satoshis", entry.get("amount")))
    return FundingInput(
        outpoint=Outpoint(txid=txid, vout=int(vout)),
        value=normalize_value(raw_value),
        address=address,
        script_pubkey=entry.get("script_hex") or entry.get("scriptPubKey") or "",
        confirmations=int(entry.get("confirmations") or 0),
        height=entry.get("block_id") or entry.get("height"),
    )


def parse_branch_id(info: dict[str, Any]) -> int:
    """Read the consensus branch id from a getblockchaininfo result."""
    consensus = info.get("consensus") or {}
    for key in ("nextblock", "chaintip", "branchid"):
        value = consensus.get(key)
        if isinstance(value, str) and value:
            return int(value.removeprefix("0x"), 16)
    raise ValueError(f"No consensus branch id in response (keys: {sorted(info)})")


class HttpProvider:
    """Shared httpx client handling."""

    name = "http"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        **client_options: Any,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout, **client_options)

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        response = await self.client.get(url, **kwargs)
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _rejection(response: httpx.Response) -> ValueError:
        return ValueError(f"HTTP {response.status_code}: {response.text[:200]}")


class BlockchairProvider(HttpProvider, UtxoIndex, Broadcaster):
    """Blockchair REST API: address dashboards and transaction push."""

    name = "blockchair"

    def __init__(
        self,
        base_url: str = "https://api.blockchair.com/zcash",
        api_key: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        super().__init__(client, timeout)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    def _params(self) -> dict[str, str]:
        return {"key": self.api_key} if self.api_key else {}

    async def fetch_spendable_inputs(self, address: str) -> list[FundingInput]:
        payload = await self._get_json(
            f"{self.base_url}/dashboards/address/{address}", params=self._params()
        )
        data = (payload or {}).get("data") or {}
        entry = data.get(address) or next(iter(data.values()), None) or {}
        utxos = entry.get("utxo") or []
        inputs = [parse_funding_input(u, address) for u in utxos]
        logger.debug(f"Blockchair returned {len(inputs)} UTXOs for {address}")
        return inputs

    async def broadcast(self, raw_tx_hex: str) -> str:
        response = await self.client.post(
            f"{self.base_url}/push/transaction",
            params=self._params(),
            data={"data": raw_tx_hex},
        )
        if response.is_error:
            raise self._rejection(response)
        return txid_from_response(response)


class ZerdinalsProvider(HttpProvider, UtxoIndex, Broadcaster):
    """Zerdinals helper service: UTXO listing and broadcast relay."""

    name = "zerdinals"

    def __init__(
        self,
        base_url: str = "https://utxos.zerdinals.com",
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        super().__init__(client, timeout)
        self.base_url = base_url.rstrip("/")

    async def fetch_spendable_inputs(self, address: str) -> list[FundingInput]:
        payload = await self._get_json(f"{self.base_url}/api/utxos/{address}")
        if not isinstance(payload, list):
            raise ValueError(f"Unexpected UTXO response type: {type(payload).__name__}")
        return [parse_funding_input(u, address) for u in payload]

    async def broadcast(self, raw_tx_hex: str) -> str:
        response = await self.client.post(
            f"{self.base_url}/api/send-transaction", json={"rawTransaction": raw_tx_hex}
        )
        if response.is_error:
            raise self._rejection(response)
        return txid_from_response(response)


class ZerdinalsIndexer(HttpProvider, InscriptionIndex):
    """Zerdinals inscription indexer, queried by output location."""

    name = "zerdinals-indexer"

    def __init__(
        self,
        base_url: str = "https://indexer.zerdinals.com",
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        super().__init__(client, timeout)
        self.base_url = base_url.rstrip("/")

    async def is_output_inscribed(self, outpoint: Outpoint) -> bool:
        response = await self.client.get(f"{self.base_url}/location/{outpoint}")
        if response.status_code == 404:
            return False
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected indexer response type: {type(payload).__name__}")
        if payload.get("code") == 404:
            return False
        inscribed = bool(
            payload.get("inscriptionId")
            or payload.get("inscriptions")
            or payload.get("locations")
            or payload.get("inscribed") is True
        )
        logger.debug(f"Indexer: {outpoint} {'inscribed' if inscribed else 'clean'}")
        return inscribed


class NodeRpcProvider(HttpProvider, ChainInfo, Broadcaster, InscriptionIndex):
    """
    zcashd-compatible JSON-RPC endpoint, self-hosted or a hosted gateway.

    Hosted gateways authenticate with an ``x-api-key`` header; a local node
    uses basic auth.
    """

    name = "node-rpc"

    def __init__(
        self,
        rpc_url: str,
        api_key: str = "",
        rpc_user: str = "",
        rpc_password: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        super().__init__(
            client,
            timeout,
            headers={"x-api-key": api_key} if api_key else None,
            auth=(rpc_user, rpc_password) if rpc_user else None,
        )
        self.rpc_url = rpc_url
        self._request_id = 0

    async def _rpc_call(self, method: str, params: list | None = None) -> Any:
        """
        Make a JSON-RPC call.

        Raises:
            ValueError: On RPC errors
            httpx.HTTPError: On connection/timeout errors
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        response = await self.client.post(self.rpc_url, json=payload)
        try:
            data = response.json()
        except ValueError:
            response.raise_for_status()
            raise ValueError(f"Non-JSON RPC response ({response.status_code})") from None

        if isinstance(data, dict) and data.get("error"):
            error_info = data["error"]
            if isinstance(error_info, dict):
                error_code = error_info.get("code", "unknown")
                error_msg = error_info.get("message", str(error_info))
                raise ValueError(f"RPC error {error_code}: {error_msg}")
            raise ValueError(f"RPC error: {error_info}")
        response.raise_for_status()
        return data.get("result") if isinstance(data, dict) else data

    async def get_current_epoch_id(self) -> int:
        info = await self._rpc_call("getblockchaininfo")
        return parse_branch_id(info or {})

    async def broadcast(self, raw_tx_hex: str) -> str:
        result = await self._rpc_call("sendrawtransaction", [raw_tx_hex])
        txid = extract_txid(result)
        if txid is None:
            raise ValueError(f"No txid in RPC result: {str(result)[:200]}")
        return txid

    async def is_output_inscribed(self, outpoint: Outpoint) -> bool:
        """
        Heuristic: an output 0 of a transaction whose scriptSig carries the
        envelope marker is treated as inscribed.
        """
        tx = await self._rpc_call("getrawtransaction", [outpoint.txid, 1])
        if not isinstance(tx, dict):
            raise ValueError("Unexpected getrawtransaction result")
        has_marker = any(
            ENVELOPE_MARKER_HEX in ((vin.get("scriptSig") or {}).get("hex") or "").lower()
            for vin in tx.get("vin") or []
        )
        return has_marker and outpoint.vout == 0
