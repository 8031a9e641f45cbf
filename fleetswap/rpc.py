"""
RPC client wrapper for Solana.
JSON-RPC over aiohttp with rate limiting and backoff.
"""

import asyncio
import base64
import time
from typing import Optional, Dict, Any, List, Union
import aiohttp
from solders.hash import Hash
from solders.pubkey import Pubkey
import structlog

from .config import Config, BACKOFF_BASE_SECONDS, BACKOFF_MAX_SECONDS, MAX_REQUESTS_PER_SECOND
from .errors import RPCError

logger = structlog.get_logger()

Address = Union[str, Pubkey]


class RateLimiter:
    """Simple rate limiter using token bucket algorithm."""

    def __init__(self, max_per_second: float):
        self.max_per_second = max_per_second
        self.tokens = max_per_second
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Acquire a token, waiting if necessary."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_update
            self.tokens = min(self.max_per_second, self.tokens + elapsed * self.max_per_second)
            self.last_update = now

            if self.tokens < 1:
                wait_time = (1 - self.tokens) / self.max_per_second
                await asyncio.sleep(wait_time)
                self.tokens = 0
            else:
                self.tokens -= 1


class RPCClient:
    """Async JSON-RPC client for Solana with rate limiting and backoff."""

    def __init__(self, config: Config, max_per_second: float = MAX_REQUESTS_PER_SECOND):
        self.config = config
        self.rpc_url = config.rpc_url
        self.rate_limiter = RateLimiter(max_per_second)
        self._session: Optional[aiohttp.ClientSession] = None
        self._backoff_until: float = 0
        self._consecutive_errors = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _wait_for_backoff(self) -> None:
        now = time.monotonic()
        if now < self._backoff_until:
            wait_time = self._backoff_until - now
            logger.warning("rpc_backoff_waiting", wait_seconds=wait_time)
            await asyncio.sleep(wait_time)

    def _apply_backoff(self) -> None:
        """Apply exponential backoff after an error."""
        self._consecutive_errors += 1
        backoff = min(
            BACKOFF_BASE_SECONDS * (2 ** self._consecutive_errors),
            BACKOFF_MAX_SECONDS
        )
        self._backoff_until = time.monotonic() + backoff
        logger.warning("rpc_backoff_applied", backoff_seconds=backoff)

    def _reset_backoff(self) -> None:
        self._consecutive_errors = 0
        self._backoff_until = 0

    async def _request(self, method: str, params: List[Any]) -> Any:
        """Make a JSON-RPC request and return its `result` member."""
        await self._wait_for_backoff()
        await self.rate_limiter.acquire()

        session = await self._get_session()
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params
        }

        try:
            async with session.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"}
            ) as response:
                if response.status == 429:
                    self._apply_backoff()
                    raise RPCError(f"Rate limited by RPC ({method})")

                response.raise_for_status()
                result = await response.json()

                if "error" in result:
                    error = result["error"]
                    message = error.get("message", error) if isinstance(error, dict) else error
                    raise RPCError(f"RPC error in {method}: {message}")

                self._reset_backoff()
                return result.get("result")

        except aiohttp.ClientError as e:
            self._apply_backoff()
            logger.error("rpc_request_failed", method=method, error=str(e))
            raise RPCError(f"{method} failed: {e}") from e

    async def get_slot(self) -> int:
        return await self._request("getSlot", [{"commitment": "confirmed"}])

    async def get_balance(self, address: Address) -> int:
        """Get SOL balance in lamports."""
        result = await self._request("getBalance", [str(address)])
        return (result or {}).get("value", 0)

    async def get_latest_blockhash(self) -> Hash:
        result = await self._request("getLatestBlockhash", [{"commitment": "finalized"}])
        return Hash.from_string(result["value"]["blockhash"])

    async def get_token_account_balance(self, token_account: Address) -> int:
        """
        Raw token balance (smallest unit) of a token account.
        A missing account reads as zero.
        """
        try:
            result = await self._request("getTokenAccountBalance", [str(token_account)])
        except RPCError as e:
            if "could not find account" in str(e).lower():
                return 0
            raise
        value = (result or {}).get("value") or {}
        return int(value.get("amount", "0"))

    async def get_account_info(self, address: Address) -> Optional[bytes]:
        """Account data bytes, or None when the account does not exist."""
        result = await self._request(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": "confirmed"}]
        )
        value = (result or {}).get("value")
        if not value:
            return None
        data, _encoding = value["data"]
        return base64.b64decode(data)

    async def send_raw_transaction(self, raw: bytes, skip_preflight: bool = False) -> str:
        """Send a serialized signed transaction and return its signature."""
        tx_base64 = base64.b64encode(raw).decode('utf-8')

        options = {
            "skipPreflight": skip_preflight,
            "preflightCommitment": "confirmed",
            "encoding": "base64",
            "maxRetries": 3,
        }

        result = await self._request("sendTransaction", [tx_base64, options])

        if isinstance(result, str):
            return result

        raise RPCError(f"Unexpected sendTransaction result: {result}")

    async def confirm_transaction(
        self,
        signature: str,
        timeout_seconds: float = 60.0
    ) -> bool:
        """Poll signature status until confirmed, failed on-chain, or timeout."""
        start_time = time.monotonic()

        while time.monotonic() - start_time < timeout_seconds:
            try:
                result = await self._request(
                    "getSignatureStatuses",
                    [[signature], {"searchTransactionHistory": True}]
                )

                statuses = (result or {}).get("value", [])
                if statuses and statuses[0]:
                    status = statuses[0]
                    if status.get("err"):
                        logger.error(
                            "transaction_failed",
                            signature=signature,
                            error=status["err"]
                        )
                        return False

                    confirmation_status = status.get("confirmationStatus")
                    if confirmation_status in ("confirmed", "finalized"):
                        logger.info(
                            "transaction_confirmed",
                            signature=signature,
                            status=confirmation_status
                        )
                        return True

                await asyncio.sleep(0.5)

            except RPCError as e:
                logger.warning(
                    "confirm_transaction_error",
                    signature=signature,
                    error=str(e)
                )
                await asyncio.sleep(1.0)

        logger.warning("transaction_timeout", signature=signature)
        return False

    async def get_signatures_for_address(
        self,
        address: Address,
        limit: int = 10,
        until: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Signatures for an address, newest first.

        Args:
            address: Account to scan
            limit: Page size
            until: Only return signatures newer than this one
        """
        options: Dict[str, Any] = {"limit": limit}
        if until:
            options["until"] = until
        result = await self._request("getSignaturesForAddress", [str(address), options])
        return result if isinstance(result, list) else []

    async def get_transaction(self, signature: str) -> Optional[Dict[str, Any]]:
        """Parsed transaction detail, or None if the node does not have it."""
        return await self._request(
            "getTransaction",
            [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0}]
        )


def create_rpc_client(config: Config) -> RPCClient:
    """Factory function to create an RPC client."""
    return RPCClient(config)
