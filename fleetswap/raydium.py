"""
Raydium trade API adapter.
"""

from typing import Dict, Any
from solders.transaction import VersionedTransaction

from .config import RAYDIUM_API_BASE
from .dex import HttpVenueAdapter
from .errors import QuoteError, BuildError
from .models import SwapParams, SwapQuote, VenueKind


class RaydiumAdapter(HttpVenueAdapter):
    kind = VenueKind.RAYDIUM
    api_base = RAYDIUM_API_BASE

    async def _compute(self, params: SwapParams, error_cls=QuoteError) -> Dict[str, Any]:
        data = await self._get_json(
            f"{self.api_base}/main/swap/compute", self._quote_query(params), error_cls
        )
        if not data.get("success"):
            raise error_cls(f"raydium compute error: {data.get('msg') or 'Unknown'}")
        return data["data"]

    async def get_quote(self, params: SwapParams) -> SwapQuote:
        data = await self._compute(params)
        return SwapQuote(
            input_mint=params.input_mint,
            output_mint=params.output_mint,
            input_amount=int(data["inputAmount"]),
            output_amount=int(data["outputAmount"]),
            price_impact_pct=float(data.get("priceImpact") or 0),
            dex=self.name,
        )

    async def build_swap_transaction(self, params: SwapParams, quote: SwapQuote) -> VersionedTransaction:
        compute_response = await self._compute(params, BuildError)

        payload = {
            "computeResponse": compute_response,
            "wallet": params.payer,
            "wrapSol": True,
            "unwrapSol": True,
        }
        data = await self._post_json(f"{self.api_base}/main/swap/transaction", payload)
        if not data.get("success"):
            raise BuildError(f"raydium transaction error: {data.get('msg') or 'Unknown'}")

        return self._decode_transaction((data.get("data") or {}).get("transaction"))
