"""
Venue adapter base classes.

Every venue quotes a swap, builds an unsigned transaction payable by the
swapping wallet, and runs the shared quote -> build -> validate -> sign ->
send -> confirm flow. Adapters never retry; the execution engine does.
"""

import base64
from typing import Optional, Dict, Any, Type
import aiohttp
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction
import structlog

from .config import Config
from .errors import FleetSwapError, SafetyError, ExecutionError, QuoteError, BuildError
from .models import SwapParams, SwapQuote, SwapResult, VenueKind
from .rpc import RPCClient
from .validator import validate_swap_transaction
from .wallet import sign_versioned_transaction

logger = structlog.get_logger(__name__)

HTTP_TIMEOUT_SECONDS = 10


class VenueAdapter:
    """Base class for a single swap venue."""

    kind: VenueKind

    def __init__(self, config: Config, rpc: RPCClient):
        self.config = config
        self.rpc = rpc

    @property
    def name(self) -> str:
        return self.kind.value

    async def get_quote(self, params: SwapParams) -> SwapQuote:
        raise NotImplementedError

    async def build_swap_transaction(self, params: SwapParams, quote: SwapQuote) -> VersionedTransaction:
        raise NotImplementedError

    async def close(self) -> None:
        pass

    async def execute_swap(self, params: SwapParams, signer: Keypair) -> SwapResult:
        """
        Quote, build, validate, sign, broadcast and confirm one swap.

        Raises:
            SafetyError: the built transaction failed validation (never retried)
            ExecutionError: any other failure along the chain
        """
        try:
            quote = await self.get_quote(params)
            transaction = await self.build_swap_transaction(params, quote)

            validate_swap_transaction(transaction, params.payer, self.name)

            signed_tx = sign_versioned_transaction(transaction, signer)
            signature = await self.rpc.send_raw_transaction(bytes(signed_tx))

            logger.info(
                "swap_sent",
                dex=self.name,
                signature=signature,
                input_mint=params.input_mint[:8],
                output_mint=params.output_mint[:8],
                amount=params.amount,
            )

            confirmed = await self.rpc.confirm_transaction(
                signature,
                timeout_seconds=self.config.confirm_timeout_ms / 1000,
            )
            if not confirmed:
                raise ExecutionError(f"Transaction {signature} was not confirmed")

            return SwapResult(
                signature=signature,
                input_amount=quote.input_amount,
                output_amount=quote.output_amount,
            )

        except (SafetyError, ExecutionError):
            raise
        except Exception as e:
            logger.warning("swap_execution_failed", dex=self.name, error=str(e))
            raise ExecutionError(f"{self.name} swap failed: {e}") from e


class HttpVenueAdapter(VenueAdapter):
    """Venue reached through a REST quote/build API (aggregators)."""

    api_base: str = ""

    def __init__(self, config: Config, rpc: RPCClient, api_base: Optional[str] = None):
        super().__init__(config, rpc)
        if api_base:
            self.api_base = api_base.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT_SECONDS)
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    @staticmethod
    def _quote_query(params: SwapParams) -> Dict[str, str]:
        return {
            "inputMint": params.input_mint,
            "outputMint": params.output_mint,
            "amount": str(params.amount),
            "slippageBps": str(params.slippage_bps),
        }

    async def _get_json(
        self, url: str, query: Dict[str, str], error_cls: Type[FleetSwapError] = QuoteError
    ) -> Dict[str, Any]:
        session = await self._get_session()
        try:
            async with session.get(url, params=query) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error("venue_api_error", dex=self.name, status=response.status, error=error_text[:200])
                    raise error_cls(f"{self.name} request failed: HTTP {response.status}")
                return await response.json()
        except aiohttp.ClientError as e:
            raise error_cls(f"{self.name} unreachable: {e}") from e

    async def _post_json(
        self, url: str, payload: Dict[str, Any], error_cls: Type[FleetSwapError] = BuildError
    ) -> Dict[str, Any]:
        session = await self._get_session()
        try:
            async with session.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json"}
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    logger.error("venue_api_error", dex=self.name, status=response.status, error=error_text[:200])
                    raise error_cls(f"{self.name} request failed: HTTP {response.status}")
                return await response.json()
        except aiohttp.ClientError as e:
            raise error_cls(f"{self.name} unreachable: {e}") from e

    def _decode_transaction(self, tx_b64: Optional[str]) -> VersionedTransaction:
        if not tx_b64:
            raise BuildError(f"{self.name} response contained no transaction")
        try:
            return VersionedTransaction.from_bytes(base64.b64decode(tx_b64))
        except Exception as e:
            raise BuildError(f"{self.name} returned a malformed transaction: {e}") from e
