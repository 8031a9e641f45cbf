"""
Venue dispatch table.
"""

from typing import Dict, Type, Union

from .config import Config
from .dex import VenueAdapter
from .jupiter import JupiterAdapter
from .pumpfun import PumpFunAdapter
from .raydium import RaydiumAdapter
from .models import VenueKind
from .rpc import RPCClient

VENUES: Dict[VenueKind, Type[VenueAdapter]] = {
    VenueKind.JUPITER: JupiterAdapter,
    VenueKind.RAYDIUM: RaydiumAdapter,
    VenueKind.PUMPFUN: PumpFunAdapter,
}

# Config attribute overriding each REST venue's API base URL
API_BASE_SETTINGS: Dict[VenueKind, str] = {
    VenueKind.JUPITER: "jupiter_api_base",
    VenueKind.RAYDIUM: "raydium_api_base",
}


def create_venue(kind: Union[VenueKind, str], config: Config, rpc: RPCClient) -> VenueAdapter:
    """Instantiate the adapter for a venue kind (enum or its string value)."""
    kind = VenueKind(kind)
    adapter_cls = VENUES[kind]
    setting = API_BASE_SETTINGS.get(kind)
    if setting:
        return adapter_cls(config, rpc, api_base=getattr(config, setting))
    return adapter_cls(config, rpc)
