"""
Core data types shared by venues, the execution engine and the bots.
"""

import time
import uuid
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Optional, Dict, Any

from .config import SOL_MINT, LAMPORTS_PER_SOL, MIN_SLIPPAGE_BPS, MAX_SLIPPAGE_BPS


class Direction(str, Enum):
    BUY = "buy"    # SOL -> Token
    SELL = "sell"  # Token -> SOL


class BotMode(str, Enum):
    BUNDLE = "bundle"
    VOLUME = "volume"
    COPYTRADE = "copytrade"
    MANUAL = "manual"


class TxStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class BotStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class VenueKind(str, Enum):
    JUPITER = "jupiter"
    RAYDIUM = "raydium"
    PUMPFUN = "pumpfun"


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def sol_to_lamports(amount_sol: float) -> int:
    return int(amount_sol * LAMPORTS_PER_SOL)


@dataclass(frozen=True)
class SwapQuote:
    """Snapshot of one quote request, consumed immediately by the builder."""
    input_mint: str
    output_mint: str
    input_amount: int
    output_amount: int
    price_impact_pct: float
    dex: str


@dataclass(frozen=True)
class SwapParams:
    """Inputs to both quoting and building (same values within one attempt)."""
    input_mint: str
    output_mint: str
    amount: int  # smallest unit
    slippage_bps: int
    payer: str   # base58 public key paying for and signing the swap

    def __post_init__(self):
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount < 0:
            raise ValueError(f"amount must be a non-negative integer, got {self.amount!r}")
        if not MIN_SLIPPAGE_BPS <= self.slippage_bps <= MAX_SLIPPAGE_BPS:
            raise ValueError(f"slippage_bps out of range: {self.slippage_bps}")

    @property
    def is_buy(self) -> bool:
        return self.input_mint == SOL_MINT

    @property
    def token_mint(self) -> str:
        return self.output_mint if self.is_buy else self.input_mint


@dataclass(frozen=True)
class SwapResult:
    signature: str
    input_amount: int
    output_amount: int


@dataclass(frozen=True)
class SwapTask:
    """One wallet's swap for one trade opportunity. Executed exactly once."""
    wallet_id: str
    params: SwapParams
    token_mint: str
    direction: Direction
    amount_sol: float
    bot_mode: BotMode
    round: int = 0

    @classmethod
    def for_wallet(
        cls,
        wallet_id: str,
        wallet_public_key: str,
        token_mint: str,
        direction: Direction,
        amount: int,
        amount_sol: float,
        slippage_bps: int,
        bot_mode: BotMode,
        round: int = 0,
    ) -> "SwapTask":
        """Build a task, routing SOL in or out depending on direction."""
        is_buy = direction == Direction.BUY
        params = SwapParams(
            input_mint=SOL_MINT if is_buy else token_mint,
            output_mint=token_mint if is_buy else SOL_MINT,
            amount=amount,
            slippage_bps=slippage_bps,
            payer=wallet_public_key,
        )
        return cls(
            wallet_id=wallet_id,
            params=params,
            token_mint=token_mint,
            direction=direction,
            amount_sol=amount_sol,
            bot_mode=bot_mode,
            round=round,
        )


@dataclass
class TransactionRecord:
    """Audit-log row for one swap attempt sequence."""
    id: str
    signature: str
    wallet_id: str
    wallet_public_key: str
    token_mint: str
    direction: Direction
    amount_sol: float
    amount_token: Optional[int]
    dex: str
    status: TxStatus
    error: Optional[str]
    bot_mode: BotMode
    round: int
    created_at: int

    @classmethod
    def pending(cls, task: SwapTask, dex: str) -> "TransactionRecord":
        return cls(
            id=new_id(),
            signature="",
            wallet_id=task.wallet_id,
            wallet_public_key=task.params.payer,
            token_mint=task.token_mint,
            direction=task.direction,
            amount_sol=task.amount_sol,
            amount_token=None,
            dex=dex,
            status=TxStatus.PENDING,
            error=None,
            bot_mode=task.bot_mode,
            round=task.round,
            created_at=now_ms(),
        )

    def confirmed(self, signature: str, amount_token: int) -> "TransactionRecord":
        return replace(self, status=TxStatus.CONFIRMED, signature=signature, amount_token=amount_token, error=None)

    def failed(self, error: str) -> "TransactionRecord":
        return replace(self, status=TxStatus.FAILED, error=error)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        data["status"] = self.status.value
        data["bot_mode"] = self.bot_mode.value
        return data


@dataclass
class DetectedTrade:
    """A swap observed on the target wallet. One per source signature."""
    id: str
    signature: str
    target_wallet: str
    token_mint: str
    direction: Direction
    amount_sol: float
    dex: str
    replicated: bool = False
    detected_at: int = field(default_factory=now_ms)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        return data


@dataclass
class BotState:
    """Snapshot of a runner's lifecycle for the control surface."""
    status: BotStatus = BotStatus.IDLE
    mode: Optional[BotMode] = None
    current_round: int = 0
    total_rounds: int = 0
    trades_completed: int = 0
    trades_failed: int = 0
    started_at: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self.status == BotStatus.RUNNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "mode": self.mode.value if self.mode else None,
            "current_round": self.current_round,
            "total_rounds": self.total_rounds,
            "trades_completed": self.trades_completed,
            "trades_failed": self.trades_failed,
            "started_at": self.started_at,
            "error": self.error,
        }
