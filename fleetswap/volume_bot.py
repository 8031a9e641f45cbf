"""
Volume bot: wallets take turns buying a token and selling part of it back,
with randomized pauses in between.
"""

import asyncio
import random
from typing import Callable, Optional
from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address
import structlog

from .config import Config, VolumeConfig
from .dex import VenueAdapter
from .engine import TransactionEngine
from .events import EventBus
from .models import BotMode, Direction, SwapTask, TxStatus, sol_to_lamports
from .notifier import TelegramNotifier
from .rpc import RPCClient
from .runner import BotRunner
from .venues import create_venue
from .wallet import WalletRegistry, WalletRecord

logger = structlog.get_logger(__name__)


def sell_amount(raw_balance: int, sell_percentage: float) -> int:
    return int(raw_balance * sell_percentage // 100)


class VolumeBot(BotRunner):
    mode = BotMode.VOLUME

    def __init__(
        self,
        config: Config,
        rpc: RPCClient,
        engine: TransactionEngine,
        wallets: WalletRegistry,
        events: Optional[EventBus] = None,
        notifier: Optional[TelegramNotifier] = None,
        venue_factory: Optional[Callable[[str], VenueAdapter]] = None,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(events, notifier)
        self.config = config
        self.rpc = rpc
        self.engine = engine
        self.wallets = wallets
        self.venue_factory = venue_factory or (lambda kind: create_venue(kind, config, rpc))
        self.rng = rng or random.Random()

    def _random_delay(self, cfg: VolumeConfig) -> int:
        return self.rng.randint(cfg.min_delay_ms, cfg.max_delay_ms)

    async def start(self, volume_config: VolumeConfig) -> asyncio.Task:
        volume_config.validate()
        adapter = self.venue_factory(volume_config.dex)
        self._begin(total_rounds=volume_config.max_rounds)
        logger.info(
            "volume_started",
            token=volume_config.token_mint[:8],
            wallets=len(volume_config.wallet_ids),
            max_rounds=volume_config.max_rounds,
        )
        return self._launch(self._run(adapter, volume_config))

    async def token_balance(self, wallet: WalletRecord, token_mint: str) -> int:
        ata = get_associated_token_address(
            Pubkey.from_string(wallet.public_key), Pubkey.from_string(token_mint)
        )
        return await self.rpc.get_token_account_balance(ata)

    def _count(self, status: TxStatus) -> None:
        if status == TxStatus.CONFIRMED:
            self._update_state(trades_completed=self._state.trades_completed + 1)
        else:
            self._update_state(trades_failed=self._state.trades_failed + 1)

    async def _run(self, adapter: VenueAdapter, cfg: VolumeConfig) -> None:
        selected = [w for w in self.wallets.list_wallets() if w.id in cfg.wallet_ids]
        try:
            if not selected:
                self._fail("No wallets selected")
                return

            round_number = 0
            while not self.stop_requested:
                if cfg.max_rounds > 0 and round_number >= cfg.max_rounds:
                    break

                wallet = selected[round_number % len(selected)]
                round_number += 1
                self._update_state(current_round=round_number)

                await self._run_round(adapter, cfg, wallet, round_number)
        except Exception as e:
            self._fail(str(e) or "Volume bot error")
        finally:
            await adapter.close()
            self._finish()

    async def _run_round(self, adapter: VenueAdapter, cfg: VolumeConfig, wallet: WalletRecord, round_number: int) -> None:
        buy_task = SwapTask.for_wallet(
            wallet_id=wallet.id,
            wallet_public_key=wallet.public_key,
            token_mint=cfg.token_mint,
            direction=Direction.BUY,
            amount=sol_to_lamports(cfg.buy_amount_sol),
            amount_sol=cfg.buy_amount_sol,
            slippage_bps=cfg.slippage_bps,
            bot_mode=BotMode.VOLUME,
            round=round_number,
        )
        [buy_record] = await self.engine.execute_sequential_swaps(adapter, [buy_task])
        self._count(buy_record.status)

        if buy_record.status != TxStatus.CONFIRMED:
            await self.sleep(self._random_delay(cfg))
            return

        if await self.sleep(self._random_delay(cfg)):
            return

        try:
            balance = await self.token_balance(wallet, cfg.token_mint)
            amount = sell_amount(balance, cfg.sell_percentage)
            if amount <= 0:
                logger.info("volume_sell_skipped", wallet_id=wallet.id, balance=balance)
                await self.sleep(self._random_delay(cfg))
                return

            sell_task = SwapTask.for_wallet(
                wallet_id=wallet.id,
                wallet_public_key=wallet.public_key,
                token_mint=cfg.token_mint,
                direction=Direction.SELL,
                amount=amount,
                amount_sol=0.0,  # known only after the swap
                slippage_bps=cfg.slippage_bps,
                bot_mode=BotMode.VOLUME,
                round=round_number,
            )
            [sell_record] = await self.engine.execute_sequential_swaps(adapter, [sell_task])
            self._count(sell_record.status)
        except Exception as e:
            logger.warning("volume_sell_failed", wallet_id=wallet.id, error=str(e))
            self._update_state(trades_failed=self._state.trades_failed + 1)

        await self.sleep(self._random_delay(cfg))
