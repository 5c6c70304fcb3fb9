"""
Chain query clients.

``ChainQueryService`` is the contract the engine consumes. Two JSON-RPC
implementations are provided: CometBFT (Cosmos SDK chains) and Bitcoin Core.
Retries with exponential backoff and an optional request rate limit live
here, not in the range fetcher.
"""

import asyncio
import logging
import random
import re
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from blocktime.errors import BlockNotFound, ChainConnectionError, ChainTimeout, UpstreamFailure
from blocktime.types import BlockSample

logger = logging.getLogger(__name__)

_FRACTION = re.compile(r"\.(\d+)")


class ChainQueryService(ABC):
    """What the engine needs from a chain node."""

    @abstractmethod
    async def current_height(self) -> int:
        ...

    @abstractmethod
    async def get_block(self, height: int) -> BlockSample:
        ...

    async def aclose(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


class RateLimiter:
    def __init__(self, requests_per_second: float):
        self.rate = requests_per_second
        self.tokens = requests_per_second
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self):
        async with self._lock:
            now = time.monotonic()
            time_passed = now - self.last_update
            self.tokens = min(self.rate, self.tokens + time_passed * self.rate)
            self.last_update = now

            if self.tokens < 1:
                sleep_time = (1 - self.tokens) / self.rate
                await asyncio.sleep(sleep_time)
                self.tokens = 0
            else:
                self.tokens -= 1

    @asynccontextmanager
    async def limit(self):
        await self.acquire()
        yield


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp as returned by CometBFT.

    Fractions longer than microseconds (CometBFT reports nanoseconds) are
    truncated. Naive timestamps are taken as UTC.
    """
    value = value.strip()
    if value.endswith("Z") or value.endswith("z"):
        value = value[:-1] + "+00:00"
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


class JSONRPCClient(ChainQueryService):
    """Shared HTTP plumbing: one ``httpx.AsyncClient``, retries, rate limit."""

    def __init__(
        self,
        endpoint: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        requests_per_second: float = 0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not endpoint:
            raise ValueError("RPC endpoint is required")
        self.endpoint = endpoint.rstrip("/")
        self.max_retries = max(max_retries, 0)
        self.retry_delay = retry_delay
        self.rate_limiter = RateLimiter(requests_per_second) if requests_per_second > 0 else None
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={"content-type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send(self, method: str, path: str, operation: str, height: Optional[int], **kwargs) -> Any:
        url = self.endpoint + path
        try:
            if self.rate_limiter is not None:
                async with self.rate_limiter.limit():
                    response = await self._client.request(method, url, **kwargs)
            else:
                response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ChainTimeout(f"request to {url} timed out: {e}", operation, height) from e
        except httpx.HTTPError as e:
            raise ChainConnectionError(f"request to {url} failed: {e}", operation, height) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and body.get("error"):
            raise self._rpc_error(body["error"], operation, height)
        if response.status_code == 404 and height is not None:
            raise BlockNotFound(height, operation, f"HTTP 404 from {url}")
        if response.is_error:
            raise ChainConnectionError(f"HTTP {response.status_code} from {url}", operation, height)
        if not isinstance(body, dict) or "result" not in body:
            raise ChainConnectionError(f"malformed response from {url}", operation, height)
        return body["result"]

    async def _call(self, method: str, path: str, operation: str, height: Optional[int] = None, **kwargs) -> Any:
        for retry in range(self.max_retries + 1):
            try:
                return await self._send(method, path, operation, height, **kwargs)
            except BlockNotFound:
                raise
            except UpstreamFailure as e:
                if retry == self.max_retries:
                    raise

                wait_time = self.retry_delay * (2 ** retry + random.uniform(0, 1))
                logger.warning(
                    f"{operation} failed (attempt {retry + 1}/{self.max_retries + 1}): {e}; "
                    f"retrying in {wait_time:.2f}s"
                )
                await asyncio.sleep(wait_time)

    def _rpc_error(self, error: Any, operation: str, height: Optional[int]) -> UpstreamFailure:
        return ChainConnectionError(f"RPC error: {error}", operation, height)


class CometRPCClient(JSONRPCClient):
    """CometBFT RPC (``/status`` and ``/block``) used by Cosmos SDK chains."""

    async def current_height(self) -> int:
        result = await self._call("GET", "/status", "current_height")
        try:
            return int(result["sync_info"]["latest_block_height"])
        except (KeyError, TypeError, ValueError) as e:
            raise ChainConnectionError(f"unexpected status response: {e}", "current_height") from e

    async def get_block(self, height: int) -> BlockSample:
        result = await self._call("GET", "/block", "get_block", height, params={"height": str(height)})
        if not result or not result.get("block"):
            raise BlockNotFound(height, "get_block", "empty block result")

        try:
            header = result["block"]["header"]
            txs = (result["block"].get("data") or {}).get("txs") or []
            return BlockSample(
                height=int(header["height"]),
                timestamp=parse_rfc3339(header["time"]),
                proposer=header.get("proposer_address", ""),
                tx_count=len(txs),
                block_hash=(result.get("block_id") or {}).get("hash", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ChainConnectionError(f"unexpected block response: {e}", "get_block", height) from e

    def _rpc_error(self, error: Any, operation: str, height: Optional[int]) -> UpstreamFailure:
        text = str(error.get("data") or error.get("message")) if isinstance(error, dict) else str(error)
        if height is not None and "height" in text:
            return BlockNotFound(height, operation, text)
        return ChainConnectionError(f"RPC error: {text}", operation, height)


class BitcoinRPCClient(JSONRPCClient):
    """
    Bitcoin Core JSON-RPC. Proof-of-work blocks have no proposer identity, so
    ``proposer`` is left empty.
    """

    HEIGHT_OUT_OF_RANGE = -8
    BLOCK_NOT_FOUND = -5

    def _payload(self, method: str, params: list) -> dict:
        return {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1,
        }

    async def current_height(self) -> int:
        result = await self._call("POST", "", "current_height", json=self._payload("getblockcount", []))
        return int(result)

    async def get_block(self, height: int) -> BlockSample:
        # First get block hash for the height
        block_hash = await self._call("POST", "", "get_block", height, json=self._payload("getblockhash", [height]))

        header = await self._call(
            "POST", "", "get_block", height, json=self._payload("getblockheader", [block_hash, True])
        )
        try:
            return BlockSample(
                height=int(header["height"]),
                timestamp=datetime.fromtimestamp(int(header["time"]), tz=timezone.utc),
                proposer="",
                tx_count=int(header.get("nTx", 0)),
                block_hash=block_hash,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ChainConnectionError(f"unexpected header response: {e}", "get_block", height) from e

    def _rpc_error(self, error: Any, operation: str, height: Optional[int]) -> UpstreamFailure:
        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message", "") if isinstance(error, dict) else str(error)
        if height is not None and code in (self.HEIGHT_OUT_OF_RANGE, self.BLOCK_NOT_FOUND):
            return BlockNotFound(height, operation, message)
        return ChainConnectionError(f"RPC error {code}: {message}", operation, height)


def create_client(chain_type: str, endpoint: str, **kwargs) -> JSONRPCClient:
    if chain_type == "cosmos":
        return CometRPCClient(endpoint, **kwargs)
    if chain_type == "bitcoin":
        return BitcoinRPCClient(endpoint, **kwargs)
    raise ValueError(f"unknown chain type: {chain_type}")
