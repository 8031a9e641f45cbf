"""
Jupiter v6 aggregator adapter.
"""

from typing import Dict, Any
from solders.transaction import VersionedTransaction
import structlog

from .config import JUPITER_API_BASE
from .dex import HttpVenueAdapter
from .errors import QuoteError
from .models import SwapParams, SwapQuote, VenueKind

logger = structlog.get_logger(__name__)


class JupiterAdapter(HttpVenueAdapter):
    kind = VenueKind.JUPITER
    api_base = JUPITER_API_BASE

    async def _fetch_quote(self, params: SwapParams) -> Dict[str, Any]:
        data = await self._get_json(f"{self.api_base}/quote", self._quote_query(params))
        if "outAmount" not in data:
            raise QuoteError(f"jupiter quote error: {data.get('error', 'no route')}")
        return data

    async def get_quote(self, params: SwapParams) -> SwapQuote:
        data = await self._fetch_quote(params)
        return SwapQuote(
            input_mint=params.input_mint,
            output_mint=params.output_mint,
            input_amount=int(data["inAmount"]),
            output_amount=int(data["outAmount"]),
            price_impact_pct=float(data.get("priceImpactPct") or 0),
            dex=self.name,
        )

    async def build_swap_transaction(self, params: SwapParams, quote: SwapQuote) -> VersionedTransaction:
        # Routes shift between quote and build, so re-quote here
        quote_response = await self._fetch_quote(params)

        payload = {
            "quoteResponse": quote_response,
            "userPublicKey": params.payer,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto"
        }
        data = await self._post_json(f"{self.api_base}/swap", payload)

        if int(quote_response["outAmount"]) != quote.output_amount:
            logger.debug(
                "jupiter_quote_drift",
                quoted=quote.output_amount,
                built=quote_response["outAmount"],
            )

        return self._decode_transaction(data.get("swapTransaction"))
