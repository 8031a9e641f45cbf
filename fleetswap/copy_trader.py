"""
Copy Trader - Polls a target wallet, detects its swaps, and replicates them
across the managed fleet.
"""

import asyncio
from datetime import datetime, timezone
from typing import Callable, Dict, Any, List, Optional
import structlog

from .config import Config, CopyTradeConfig, COPY_SIGNATURE_PAGE_SIZE
from .dex import VenueAdapter
from .engine import TransactionEngine
from .errors import FatalMonitorError, ParseError
from .events import EventBus, TRADE_DETECTED
from .models import BotMode, BotStatus, DetectedTrade, SwapTask, TxStatus, new_id, sol_to_lamports
from .notifier import TelegramNotifier
from .pipeline_stats import PipelineStats
from .rpc import RPCClient
from .runner import BotRunner
from .store import TransactionStore
from .tx_parser import TransactionParser, ParsedSwap, SkipReason
from .venues import create_venue
from .wallet import WalletRegistry

logger = structlog.get_logger(__name__)

SKIP_COUNTERS = {
    SkipReason.META_ERROR: "failed_tx",
    SkipReason.UNKNOWN_DEX: "unknown_dex",
    SkipReason.NO_SWAP: "no_swap_detected",
}


class CopyTradeMonitor(BotRunner):
    """
    One copy-trading session.

    State: idle -> running -> idle (stop) | error (no initial cursor).
    History before start is never replayed: the cursor starts at the target's
    newest signature and only moves forward, before each batch is processed.
    """

    mode = BotMode.COPYTRADE

    def __init__(
        self,
        config: Config,
        rpc: RPCClient,
        engine: TransactionEngine,
        store: TransactionStore,
        wallets: WalletRegistry,
        events: Optional[EventBus] = None,
        notifier: Optional[TelegramNotifier] = None,
        venue_factory: Optional[Callable[[str], VenueAdapter]] = None,
    ):
        super().__init__(events, notifier)
        self.config = config
        self.rpc = rpc
        self.engine = engine
        self.store = store
        self.wallets = wallets
        self.venue_factory = venue_factory or (lambda kind: create_venue(kind, config, rpc))
        self.stats = PipelineStats()

        self.copy_config: Optional[CopyTradeConfig] = None
        self.adapter: Optional[VenueAdapter] = None
        self.parser: Optional[TransactionParser] = None
        self.last_signature: Optional[str] = None

    async def start(self, copy_config: CopyTradeConfig) -> asyncio.Task:
        """
        Establish the polling cursor and launch the poll loop.

        Raises:
            BotAlreadyRunning: a session is already active
            FatalMonitorError: the initial cursor could not be fetched
        """
        copy_config.validate()
        adapter = self.venue_factory(copy_config.dex)
        self._begin()

        self.copy_config = copy_config
        self.adapter = adapter
        self.parser = TransactionParser(copy_config.target_wallet)
        self.last_signature = None
        self.stats.reset()

        # First poll only sets the cursor
        try:
            initial = await self.rpc.get_signatures_for_address(copy_config.target_wallet, limit=1)
        except Exception as e:
            message = f"Failed to fetch initial signatures: {e}"
            await adapter.close()
            self._fail(message)
            raise FatalMonitorError(message) from e

        if initial:
            self.last_signature = initial[0]["signature"]

        logger.info(
            "copy_trader_started",
            target=copy_config.target_wallet[:8],
            dex=copy_config.dex,
            wallets=len(copy_config.wallet_ids),
            amount_mode=copy_config.amount_mode,
            cursor=(self.last_signature or "")[:16],
        )
        return self._launch(self._run())

    async def _run(self) -> None:
        try:
            while not self.stop_requested:
                if await self.sleep(self.copy_config.poll_interval_ms):
                    break
                try:
                    await self.poll_once()
                except Exception as e:
                    # A single bad cycle never kills the monitor
                    logger.error("copy_poll_error", error=str(e))
        except Exception as e:
            self._fail(str(e) or "Copy trade bot error")
        finally:
            await self.adapter.close()
            self._finish()

    async def poll_once(self) -> int:
        """Fetch and process signatures newer than the cursor. Returns batch size."""
        options: Dict[str, Any] = {"limit": COPY_SIGNATURE_PAGE_SIZE}
        if self.last_signature:
            options["until"] = self.last_signature

        signatures = await self.rpc.get_signatures_for_address(self.copy_config.target_wallet, **options)

        self.stats.incr("total_polls")
        self.stats.set_last_cycle_at(datetime.now(timezone.utc).isoformat())

        if not signatures:
            return 0

        self.stats.incr_by("signatures_fetched", len(signatures))
        self.last_signature = signatures[0]["signature"]

        # Oldest first to keep replication order chronological
        for sig_info in reversed(signatures):
            if self.stop_requested:
                break
            await self._process_signature(sig_info)

        return len(signatures)

    async def _process_signature(self, sig_info: Dict[str, Any]) -> None:
        signature = sig_info["signature"]

        if sig_info.get("err"):
            self.stats.incr("failed_tx")
            return

        try:
            tx_data = await self.rpc.get_transaction(signature)
        except Exception as e:
            logger.debug("get_transaction_error", signature=signature[:16], error=str(e))
            tx_data = None

        if not tx_data:
            self.stats.incr("parse_error")
            return

        try:
            result = self.parser.parse(tx_data)
        except ParseError as e:
            logger.warning("parse_error", signature=signature[:16], error=str(e))
            self.stats.incr("parse_error")
            return

        if result.swap is None:
            self.stats.incr(SKIP_COUNTERS[result.reason])
            return

        swap = result.swap
        if (swap.is_buy and not self.copy_config.copy_buys) or (not swap.is_buy and not self.copy_config.copy_sells):
            self.stats.incr("direction_skipped")
            return

        await self._handle_detected(signature, swap)

    async def _handle_detected(self, signature: str, swap: ParsedSwap) -> None:
        cfg = self.copy_config
        trade = DetectedTrade(
            id=new_id(),
            signature=signature,
            target_wallet=cfg.target_wallet,
            token_mint=swap.token_mint,
            direction=swap.direction,
            amount_sol=swap.amount_sol,
            dex=swap.dex.value,
        )

        if not await self.store.insert_detected_trade(trade):
            logger.info("trade_already_detected", signature=signature[:16])
            return

        self.stats.incr("trades_detected")
        self._update_state(current_round=self._state.current_round + 1)
        if self.events:
            self.events.emit(TRADE_DETECTED, trade.to_dict())
        if self.notifier:
            self.engine.detach(self.notifier.notify_trade_detected(trade), "notify_trade_detected")

        logger.info(
            "trade_detected",
            signature=signature[:16],
            token=swap.token_mint[:8],
            direction=swap.direction.value,
            amount_sol=swap.amount_sol,
            dex=swap.dex.value,
        )

        if cfg.copy_delay_ms > 0:
            await self.sleep(cfg.copy_delay_ms)
        if self.stop_requested:
            return

        tasks = self.build_tasks(swap)
        if not tasks:
            return

        try:
            records = await self.engine.execute_parallel_swaps(self.adapter, tasks)
        except Exception as e:
            logger.error("replication_failed", signature=signature[:16], error=str(e))
            self.stats.incr_by("trades_failed", len(tasks))
            self._update_state(trades_failed=self._state.trades_failed + len(tasks))
            return

        succeeded = sum(1 for r in records if r.status == TxStatus.CONFIRMED)
        failed = sum(1 for r in records if r.status == TxStatus.FAILED)

        await self.store.mark_trade_replicated(signature, succeeded > 0)
        if succeeded:
            self.stats.incr_by("trades_replicated", succeeded)
        if failed:
            self.stats.incr_by("trades_failed", failed)
        self._update_state(
            trades_completed=self._state.trades_completed + succeeded,
            trades_failed=self._state.trades_failed + failed,
        )

        logger.info("trade_replicated", signature=signature[:16], succeeded=succeeded, failed=failed)

    def amount_per_wallet(self, swap: ParsedSwap) -> float:
        cfg = self.copy_config
        if cfg.amount_mode == "fixed":
            return cfg.fixed_amount_sol
        return swap.amount_sol / len(cfg.wallet_ids)

    def build_tasks(self, swap: ParsedSwap) -> List[SwapTask]:
        """One task per configured wallet with a resolvable key."""
        cfg = self.copy_config
        amount_sol = self.amount_per_wallet(swap)
        tasks = []

        for wallet_id in cfg.wallet_ids:
            wallet = self.wallets.get(wallet_id)
            if wallet is None:
                logger.warning("copy_wallet_unknown", wallet_id=wallet_id)
                continue
            tasks.append(SwapTask.for_wallet(
                wallet_id=wallet_id,
                wallet_public_key=wallet.public_key,
                token_mint=swap.token_mint,
                direction=swap.direction,
                amount=sol_to_lamports(amount_sol),
                amount_sol=amount_sol,
                slippage_bps=cfg.slippage_bps,
                bot_mode=BotMode.COPYTRADE,
            ))

        return tasks

    def pipeline_summary(self) -> str:
        return self.stats.format()

    @property
    def is_error(self) -> bool:
        return self._state.status == BotStatus.ERROR
