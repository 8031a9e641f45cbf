"""
Configuration loader for fleetswap.
Loads settings from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from typing import List, Optional
from dotenv import load_dotenv


# Native SOL (wrapped mint address used by every venue)
SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000

# Program IDs used to classify copied transactions
JUPITER_PROGRAM_ID = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
RAYDIUM_AMM_PROGRAM_ID = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
PUMPFUN_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"

# Venues a runner can trade on
VENUE_NAMES = ("jupiter", "raydium", "pumpfun")

# Venue APIs
JUPITER_API_BASE = "https://quote-api.jup.ag/v6"
RAYDIUM_API_BASE = "https://transaction-v1.raydium.io/v2"

# Execution defaults
DEFAULT_RPC_ENDPOINT = "https://api.mainnet-beta.solana.com"
DEFAULT_SLIPPAGE_BPS = 300  # 3%
TX_CONFIRM_TIMEOUT_MS = 60_000
TX_RETRY_COUNT = 3
TX_RETRY_DELAY_MS = 1_000
PLATFORM_FEE_BPS = 150  # 1.5% of every confirmed swap

# Copy trading
COPY_SIGNATURE_PAGE_SIZE = 10
MIN_DETECTED_SOL = 0.001

# Rate limiting for the JSON-RPC client
MAX_REQUESTS_PER_SECOND = 10.0
BACKOFF_BASE_SECONDS = 1.0
BACKOFF_MAX_SECONDS = 60.0

MIN_SLIPPAGE_BPS = 1
MAX_SLIPPAGE_BPS = 5000


@dataclass
class Config:
    """Process configuration loaded from environment variables."""

    # Network
    rpc_url: str
    network: str  # 'devnet' or 'mainnet-beta'

    # Storage
    wallets_file: str  # JSON file with the managed wallet fleet
    database_path: str

    # Execution
    slippage_bps: int
    tx_retry_count: int
    tx_retry_delay_ms: int
    confirm_timeout_ms: int
    platform_fee_wallet: Optional[str]
    platform_fee_bps: int

    # Venue APIs
    jupiter_api_base: str
    raydium_api_base: str

    # Alerts
    telegram_bot_token: Optional[str]
    telegram_chat_id: Optional[str]

    # Control API
    api_host: str
    api_port: int
    api_token: Optional[str]

    # Ops
    log_level: str

    @property
    def is_devnet(self) -> bool:
        return self.network == 'devnet'

    @property
    def is_mainnet(self) -> bool:
        return self.network == 'mainnet-beta'

    @property
    def slippage_percent(self) -> float:
        return self.slippage_bps / 100.0

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    @property
    def platform_fee_enabled(self) -> bool:
        return bool(self.platform_fee_wallet) and self.platform_fee_bps > 0


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    rpc_url = os.getenv('RPC_URL', DEFAULT_RPC_ENDPOINT)
    if not rpc_url:
        raise ValueError("RPC_URL environment variable must not be empty")

    slippage_bps = int(os.getenv('SLIPPAGE_BPS', str(DEFAULT_SLIPPAGE_BPS)))
    validate_slippage(slippage_bps)

    return Config(
        # Network
        rpc_url=rpc_url,
        network=os.getenv('NETWORK', 'mainnet-beta'),

        # Storage
        wallets_file=os.getenv('WALLETS_FILE', 'wallets.json'),
        database_path=os.getenv('DATABASE_PATH', 'data/fleetswap.db'),

        # Execution
        slippage_bps=slippage_bps,
        tx_retry_count=int(os.getenv('TX_RETRY_COUNT', str(TX_RETRY_COUNT))),
        tx_retry_delay_ms=int(os.getenv('TX_RETRY_DELAY_MS', str(TX_RETRY_DELAY_MS))),
        confirm_timeout_ms=int(os.getenv('TX_CONFIRM_TIMEOUT_MS', str(TX_CONFIRM_TIMEOUT_MS))),
        platform_fee_wallet=os.getenv('PLATFORM_FEE_WALLET') or None,
        platform_fee_bps=int(os.getenv('PLATFORM_FEE_BPS', str(PLATFORM_FEE_BPS))),

        # Venue APIs
        jupiter_api_base=os.getenv('JUPITER_API_BASE', JUPITER_API_BASE),
        raydium_api_base=os.getenv('RAYDIUM_API_BASE', RAYDIUM_API_BASE),

        # Alerts
        telegram_bot_token=os.getenv('TELEGRAM_BOT_TOKEN'),
        telegram_chat_id=os.getenv('TELEGRAM_CHAT_ID'),

        # Control API
        api_host=os.getenv('API_HOST', '127.0.0.1'),
        api_port=int(os.getenv('API_PORT', '8765')),
        api_token=os.getenv('API_TOKEN') or None,

        # Ops
        log_level=os.getenv('LOG_LEVEL', 'INFO'),
    )


def validate_slippage(slippage_bps: int) -> None:
    if not MIN_SLIPPAGE_BPS <= slippage_bps <= MAX_SLIPPAGE_BPS:
        raise ValueError(
            f"slippage_bps must be between {MIN_SLIPPAGE_BPS} and {MAX_SLIPPAGE_BPS}, got {slippage_bps}"
        )


def _require_wallets(wallet_ids: List[str]) -> None:
    if not wallet_ids:
        raise ValueError("At least one wallet id is required")


def _require_mint(mint: str) -> None:
    # Base58 public keys are 32-44 characters
    if not 32 <= len(mint) <= 44:
        raise ValueError(f"Invalid token mint: {mint!r}")


def _require_venue(dex: str) -> None:
    if dex not in VENUE_NAMES:
        raise ValueError(f"Unknown dex: {dex!r}")


@dataclass
class CopyTradeConfig:
    """Settings for one copy-trading session."""
    target_wallet: str
    dex: str
    wallet_ids: List[str]
    copy_buys: bool = True
    copy_sells: bool = True
    amount_mode: str = "fixed"  # 'fixed' or 'proportional'
    fixed_amount_sol: float = 0.01
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    poll_interval_ms: int = 2_000
    copy_delay_ms: int = 0

    def validate(self) -> None:
        _require_mint(self.target_wallet)
        _require_venue(self.dex)
        _require_wallets(self.wallet_ids)
        validate_slippage(self.slippage_bps)
        if self.amount_mode not in ("fixed", "proportional"):
            raise ValueError(f"amount_mode must be 'fixed' or 'proportional', got {self.amount_mode!r}")
        if self.amount_mode == "fixed" and self.fixed_amount_sol <= 0:
            raise ValueError("fixed_amount_sol must be positive")
        if self.poll_interval_ms < 0 or self.copy_delay_ms < 0:
            raise ValueError("Intervals must be non-negative")


@dataclass
class BundleConfig:
    """Settings for a bundle run: every wallet swaps in parallel each round."""
    token_mint: str
    dex: str
    wallet_ids: List[str]
    direction: str  # 'buy' or 'sell'
    amount_sol: float
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    rounds: int = 1
    delay_between_rounds_ms: int = 0

    def validate(self) -> None:
        _require_mint(self.token_mint)
        _require_venue(self.dex)
        _require_wallets(self.wallet_ids)
        validate_slippage(self.slippage_bps)
        if self.direction not in ("buy", "sell"):
            raise ValueError(f"direction must be 'buy' or 'sell', got {self.direction!r}")
        if self.amount_sol <= 0:
            raise ValueError("amount_sol must be positive")
        if not 1 <= self.rounds <= 1000:
            raise ValueError("rounds must be between 1 and 1000")
        if self.delay_between_rounds_ms < 0:
            raise ValueError("delay_between_rounds_ms must be non-negative")


@dataclass
class VolumeConfig:
    """Settings for a volume run: wallets take turns buying then selling."""
    token_mint: str
    dex: str
    wallet_ids: List[str]
    buy_amount_sol: float
    sell_percentage: float = 100.0  # 50-100
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS
    min_delay_ms: int = 1_000
    max_delay_ms: int = 5_000
    max_rounds: int = 0  # 0 = unlimited

    def validate(self) -> None:
        _require_mint(self.token_mint)
        _require_venue(self.dex)
        _require_wallets(self.wallet_ids)
        validate_slippage(self.slippage_bps)
        if self.buy_amount_sol <= 0:
            raise ValueError("buy_amount_sol must be positive")
        if not 50 <= self.sell_percentage <= 100:
            raise ValueError("sell_percentage must be between 50 and 100")
        if self.min_delay_ms < 0 or self.max_delay_ms < self.min_delay_ms:
            raise ValueError("Delay range must satisfy 0 <= min_delay_ms <= max_delay_ms")
        if self.max_rounds < 0:
            raise ValueError("max_rounds must be non-negative")
