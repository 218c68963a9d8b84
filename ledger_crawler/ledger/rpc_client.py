"""
Solana JSON-RPC Ledger Reader

LedgerReader over a Solana-compatible JSON-RPC endpoint.

Methods used:
- getSignaturesForAddress: paginated signature listing (newest first)
- getTransaction: full transaction body, JSON encoding

Failure classification:
- HTTP 429 / 5xx, connection errors, timeouts, node-behind RPC codes -> transient
- null getTransaction result -> NotFoundError
- undecodable payloads -> MalformedResponseError
- any other RPC error -> permanent

API Documentation: https://solana.com/docs/rpc/http
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from ..errors import (
    MalformedResponseError,
    NotFoundError,
    PermanentFetchError,
    TransientFetchError,
)
from ..types import InstructionRecord, SignatureInfo, TransactionRecord
from .reader import MAX_SIGNATURES_PER_REQUEST


MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"

# Node is behind, block not yet available, min context slot not reached, etc.
TRANSIENT_RPC_CODES = {-32004, -32005, -32014, -32016, 429}


@dataclass
class RpcConfig:
    """Configuration for the JSON-RPC reader."""
    url: str = MAINNET_RPC_URL
    commitment: str = "finalized"
    request_timeout: float = 30.0
    max_supported_transaction_version: int = 0


class SolanaRpcReader:
    """
    JSON-RPC ledger reader.

    Usage:
        async with SolanaRpcReader(RpcConfig(url=...)) as reader:
            sigs = await reader.list_signatures(address)
            tx = await reader.get_transaction(sigs[0].signature, address)
    """

    def __init__(self, config: Optional[RpcConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or RpcConfig()
        self._logger = logging.getLogger("SolanaRpcReader")
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)
        self._requests = 0
        self._errors = 0

    async def start(self):
        """Open the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.request_timeout)
            )
            self._owns_session = True

    async def stop(self):
        """Close the HTTP session if we opened it."""
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "SolanaRpcReader":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # =========================================================================
    # LedgerReader
    # =========================================================================

    async def list_signatures(
        self,
        account: str,
        before: Optional[str] = None,
        limit: int = MAX_SIGNATURES_PER_REQUEST
    ) -> List[SignatureInfo]:
        options: Dict[str, Any] = {
            "limit": min(limit, MAX_SIGNATURES_PER_REQUEST),
            "commitment": self.config.commitment,
        }
        if before:
            options["before"] = before

        result = await self._call("getSignaturesForAddress", [account, options])
        if not isinstance(result, list):
            raise MalformedResponseError(f"getSignaturesForAddress returned {type(result).__name__}")

        try:
            return [
                SignatureInfo(
                    signature=entry["signature"],
                    slot=entry.get("slot", 0),
                    block_time=entry.get("blockTime"),
                    err=entry.get("err")
                )
                for entry in result
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise MalformedResponseError(f"Bad signature entry: {e}") from e

    async def get_transaction(self, signature: str, target: str) -> TransactionRecord:
        options = {
            "encoding": "json",
            "commitment": self.config.commitment,
            "maxSupportedTransactionVersion": self.config.max_supported_transaction_version,
        }
        result = await self._call("getTransaction", [signature, options], signature=signature)
        if result is None:
            raise NotFoundError("transaction not found", signature=signature)
        return parse_transaction(signature, target, result)

    # =========================================================================
    # Transport
    # =========================================================================

    async def _call(self, method: str, params: List[Any], signature: Optional[str] = None) -> Any:
        if self._session is None:
            await self.start()

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        self._requests += 1

        try:
            async with self._session.post(
                self.config.url,
                json=payload,
                headers={"Content-Type": "application/json"}
            ) as response:
                if response.status == 429:
                    self._errors += 1
                    raise TransientFetchError(
                        f"{method} rate limited",
                        signature=signature,
                        retry_after=_parse_retry_after(response.headers.get("Retry-After"))
                    )
                if response.status >= 500:
                    self._errors += 1
                    raise TransientFetchError(f"{method} failed: HTTP {response.status}", signature=signature)
                if response.status != 200:
                    self._errors += 1
                    raise PermanentFetchError(f"{method} failed: HTTP {response.status}", signature=signature)

                data = await response.json(content_type=None)

        except aiohttp.ClientError as e:
            self._errors += 1
            raise TransientFetchError(f"{method} connection error: {e}", signature=signature) from e
        except asyncio.TimeoutError as e:
            self._errors += 1
            raise TransientFetchError(f"{method} timed out", signature=signature) from e
        except ValueError as e:
            self._errors += 1
            raise MalformedResponseError(f"{method} returned invalid JSON: {e}", signature=signature) from e

        if not isinstance(data, dict):
            self._errors += 1
            raise MalformedResponseError(f"{method} returned non-object response", signature=signature)

        error = data.get("error")
        if error:
            self._errors += 1
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", error) if isinstance(error, dict) else error
            self._logger.debug(f"{method} RPC error {code}: {message}")
            if code in TRANSIENT_RPC_CODES:
                raise TransientFetchError(f"{method} RPC error {code}: {message}", signature=signature)
            raise PermanentFetchError(f"{method} RPC error {code}: {message}", signature=signature)

        if "result" not in data:
            self._errors += 1
            raise MalformedResponseError(f"{method} response has no result", signature=signature)
        return data["result"]

    def get_stats(self) -> Dict:
        """Get reader statistics."""
        return {
            "url": self.config.url,
            "requests": self._requests,
            "errors": self._errors,
        }


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _key_at(keys: List[str], index: Any) -> str:
    """Account key at a message index; negative or non-integer indices are rejected."""
    if not isinstance(index, int) or isinstance(index, bool) or index < 0:
        raise IndexError(f"bad account index {index!r}")
    return keys[index]


def parse_transaction(signature: str, target: str, result: Dict[str, Any]) -> TransactionRecord:
    """
    Decode a JSON-encoded getTransaction result.

    Instruction account indices are resolved against the full key list
    (static keys, then loaded writable, then loaded readonly addresses).
    Any shape problem raises MalformedResponseError.
    """
    try:
        if not isinstance(result, dict):
            raise TypeError(f"result is {type(result).__name__}")
        message = result["transaction"]["message"]
        meta = result.get("meta")
        if meta is not None and not isinstance(meta, dict):
            raise TypeError(f"meta is {type(meta).__name__}")
        header = message.get("header", {})
        if not isinstance(header, dict):
            raise TypeError(f"header is {type(header).__name__}")

        keys = list(message["accountKeys"])
        if meta and meta.get("loadedAddresses"):
            loaded = meta["loadedAddresses"]
            keys += list(loaded.get("writable", [])) + list(loaded.get("readonly", []))

        signer_count = header.get("numRequiredSignatures", 0)

        instructions = tuple(
            InstructionRecord(
                program_id=_key_at(keys, ix["programIdIndex"]),
                accounts=tuple(_key_at(keys, i) for i in ix.get("accounts", [])),
                data=ix.get("data", "")
            )
            for ix in message["instructions"]
        )
        signers = tuple(keys[:signer_count])

        if meta is None:
            success, error, logs = False, "transaction meta unavailable", ()
        else:
            error = meta.get("err")
            success = error is None
            logs = tuple(meta.get("logMessages") or ())
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise MalformedResponseError(f"Undecodable transaction: {e!r}", signature=signature) from e

    return TransactionRecord(
        signature=signature,
        target=target,
        success=success,
        error=error,
        instructions=instructions,
        block_time=result.get("blockTime"),
        slot=result.get("slot", 0),
        account_keys=tuple(keys),
        signers=signers,
        log_messages=logs,
    )
