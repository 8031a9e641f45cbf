"""
Pipeline funnel counters for the copy-trade monitor.
Answers "why is nothing being copied?" by bucketing every polled signature.
"""

from dataclasses import dataclass, fields
from typing import Optional, Dict, Any

COUNTER_FIELDS = (
    "total_polls",
    "signatures_fetched",
    "failed_tx",
    "parse_error",
    "unknown_dex",
    "no_swap_detected",
    "direction_skipped",
    "trades_detected",
    "trades_replicated",
    "trades_failed",
)


@dataclass
class PipelineStats:
    """Monotonic counters owned by a single monitor loop."""
    last_cycle_at: Optional[str] = None
    total_polls: int = 0
    signatures_fetched: int = 0
    failed_tx: int = 0
    parse_error: int = 0
    unknown_dex: int = 0
    no_swap_detected: int = 0
    direction_skipped: int = 0
    trades_detected: int = 0
    trades_replicated: int = 0
    trades_failed: int = 0

    def incr(self, name: str) -> None:
        self.incr_by(name, 1)

    def incr_by(self, name: str, n: int) -> None:
        if name not in COUNTER_FIELDS:
            raise KeyError(f"Unknown pipeline counter: {name}")
        setattr(self, name, getattr(self, name) + n)

    def set_last_cycle_at(self, iso: str) -> None:
        self.last_cycle_at = iso

    def reset(self) -> None:
        for f in fields(self):
            setattr(self, f.name, None if f.name == "last_cycle_at" else 0)

    def snapshot(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def format(self) -> str:
        """HTML summary suitable for a Telegram message."""
        ts = self.last_cycle_at or "N/A"
        return (
            f"🔧 <b>Pipeline Funnel</b> (last cycle @ {ts})\n\n"
            f"Polls completed: {self.total_polls:,}\n"
            f"Signatures fetched: {self.signatures_fetched:,}\n\n"
            f"--- FILTER BREAKDOWN ---\n"
            f"Failed tx:          {self.failed_tx:,}\n"
            f"Parse error:        {self.parse_error:,}\n"
            f"Unknown DEX:        {self.unknown_dex:,}\n"
            f"No swap detected:   {self.no_swap_detected:,}\n"
            f"Direction skipped:  {self.direction_skipped:,}\n\n"
            f"--- RESULTS ---\n"
            f"Trades detected:    {self.trades_detected:,}\n"
            f"Replicated:         {self.trades_replicated:,}\n"
            f"Failed:             {self.trades_failed:,}"
        )
