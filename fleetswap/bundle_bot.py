"""
Bundle bot: every selected wallet swaps the same token in parallel, for a
fixed number of rounds.
"""

import asyncio
from typing import Callable, List, Optional
import structlog

from .config import Config, BundleConfig
from .dex import VenueAdapter
from .engine import TransactionEngine
from .events import EventBus
from .models import BotMode, Direction, SwapTask, TxStatus, sol_to_lamports
from .notifier import TelegramNotifier
from .rpc import RPCClient
from .runner import BotRunner
from .venues import create_venue
from .wallet import WalletRegistry

logger = structlog.get_logger(__name__)


class BundleBot(BotRunner):
    mode = BotMode.BUNDLE

    def __init__(
        self,
        config: Config,
        rpc: RPCClient,
        engine: TransactionEngine,
        wallets: WalletRegistry,
        events: Optional[EventBus] = None,
        notifier: Optional[TelegramNotifier] = None,
        venue_factory: Optional[Callable[[str], VenueAdapter]] = None,
    ):
        super().__init__(events, notifier)
        self.config = config
        self.engine = engine
        self.wallets = wallets
        self.venue_factory = venue_factory or (lambda kind: create_venue(kind, config, rpc))

    async def start(self, bundle_config: BundleConfig) -> asyncio.Task:
        bundle_config.validate()
        adapter = self.venue_factory(bundle_config.dex)
        self._begin(total_rounds=bundle_config.rounds)
        logger.info(
            "bundle_started",
            token=bundle_config.token_mint[:8],
            direction=bundle_config.direction,
            wallets=len(bundle_config.wallet_ids),
            rounds=bundle_config.rounds,
        )
        return self._launch(self._run(adapter, bundle_config))

    def build_round(self, cfg: BundleConfig, round_number: int) -> List[SwapTask]:
        """Raises KeyError for a wallet id that is not in the registry."""
        tasks = []
        for wallet_id in cfg.wallet_ids:
            wallet = self.wallets.get(wallet_id)
            if wallet is None:
                raise KeyError(f"Wallet {wallet_id} not found")
            tasks.append(SwapTask.for_wallet(
                wallet_id=wallet_id,
                wallet_public_key=wallet.public_key,
                token_mint=cfg.token_mint,
                direction=Direction(cfg.direction),
                amount=sol_to_lamports(cfg.amount_sol),
                amount_sol=cfg.amount_sol,
                slippage_bps=cfg.slippage_bps,
                bot_mode=BotMode.BUNDLE,
                round=round_number,
            ))
        return tasks

    async def _run(self, adapter: VenueAdapter, cfg: BundleConfig) -> None:
        try:
            for round_number in range(1, cfg.rounds + 1):
                if self.stop_requested:
                    break
                self._update_state(current_round=round_number)

                tasks = self.build_round(cfg, round_number)
                records = await self.engine.execute_parallel_swaps(adapter, tasks)

                completed = sum(1 for r in records if r.status == TxStatus.CONFIRMED)
                failed = len(records) - completed
                self._update_state(
                    trades_completed=self._state.trades_completed + completed,
                    trades_failed=self._state.trades_failed + failed,
                )
                logger.info("bundle_round_done", round=round_number, completed=completed, failed=failed)

                if round_number < cfg.rounds and await self.sleep(cfg.delay_between_rounds_ms):
                    break
        except KeyError as e:
            self._fail(str(e.args[0]) if e.args else "Unknown wallet")
        except Exception as e:
            self._fail(str(e) or "Bundle bot error")
        finally:
            await adapter.close()
            self._finish()
