"""
Swap execution engine.

Runs a SwapTask through a venue adapter with bounded exponential-backoff
retries, keeping a durable TransactionRecord for every task: inserted as
pending before any network call, updated exactly once to confirmed/failed.
"""

import asyncio
from typing import List, Optional, Set, Coroutine, Any
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction
import structlog

from .config import Config, LAMPORTS_PER_SOL
from .dex import VenueAdapter
from .errors import SafetyError
from .events import EventBus, TX_EVENT
from .models import SwapTask, TransactionRecord
from .notifier import TelegramNotifier
from .rpc import RPCClient
from .store import TransactionStore
from .wallet import WalletRegistry

logger = structlog.get_logger(__name__)


def platform_fee_lamports(amount_sol: float, fee_bps: int) -> int:
    return int(amount_sol * LAMPORTS_PER_SOL * fee_bps // 10_000)


class TransactionEngine:
    """Executes swap tasks with retry and an audit trail."""

    def __init__(
        self,
        config: Config,
        store: TransactionStore,
        wallets: WalletRegistry,
        rpc: RPCClient,
        notifier: Optional[TelegramNotifier] = None,
        events: Optional[EventBus] = None,
    ):
        self.config = config
        self.store = store
        self.wallets = wallets
        self.rpc = rpc
        self.notifier = notifier
        self.events = events
        self._detached: Set[asyncio.Task] = set()

    # Detached side effects

    def detach(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        """Run a best-effort side effect without blocking the caller."""
        task = asyncio.create_task(coro, name=name)
        self._detached.add(task)
        task.add_done_callback(self._on_detached_done)

    def _on_detached_done(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("detached_task_failed", task=task.get_name(), error=str(error))

    async def drain(self) -> None:
        """Wait for outstanding fee transfers and notifications."""
        while self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)

    async def _send_platform_fee(self, signer: Keypair, amount_sol: float) -> None:
        lamports = platform_fee_lamports(amount_sol, self.config.platform_fee_bps)
        if lamports <= 0:
            return

        ix = transfer(TransferParams(
            from_pubkey=signer.pubkey(),
            to_pubkey=Pubkey.from_string(self.config.platform_fee_wallet),
            lamports=lamports,
        ))
        blockhash = await self.rpc.get_latest_blockhash()
        message = MessageV0.try_compile(signer.pubkey(), [ix], [], blockhash)
        tx = VersionedTransaction(message, [signer])

        signature = await self.rpc.send_raw_transaction(bytes(tx))
        await self.rpc.confirm_transaction(signature, timeout_seconds=self.config.confirm_timeout_ms / 1000)
        logger.info("platform_fee_sent", lamports=lamports, signature=signature)

    # Record lifecycle

    def _publish(self, record: TransactionRecord) -> None:
        if self.events:
            self.events.emit(TX_EVENT, record.to_dict())

    async def _record_pending(self, record: TransactionRecord) -> None:
        await self.store.insert_transaction(record)
        self._publish(record)

    async def _record_terminal(self, record: TransactionRecord) -> TransactionRecord:
        await self.store.update_transaction(record)
        self._publish(record)
        return record

    async def _fail(self, record: TransactionRecord, error: str) -> TransactionRecord:
        failed = await self._record_terminal(record.failed(error))
        logger.error(
            "swap_failed",
            wallet_id=record.wallet_id,
            token=record.token_mint[:8],
            dex=record.dex,
            error=error,
        )
        if self.notifier:
            self.detach(self.notifier.notify_tx_failed(failed), "notify_tx_failed")
        return failed

    # Execution

    async def execute_with_retry(
        self,
        adapter: VenueAdapter,
        task: SwapTask,
        max_retries: Optional[int] = None,
    ) -> TransactionRecord:
        """
        Execute one task, retrying with exponential backoff.

        Makes at most max_retries + 1 attempts, sleeping
        tx_retry_delay_ms * 2**attempt between them. Safety failures end the
        sequence after the first attempt. Never returns a pending record.
        """
        retries = self.config.tx_retry_count if max_retries is None else max_retries
        record = TransactionRecord.pending(task, adapter.name)
        await self._record_pending(record)

        try:
            keypair = self.wallets.get_signing_key(task.wallet_id)
        except KeyError as e:
            return await self._fail(record, str(e.args[0]) if e.args else f"Wallet {task.wallet_id} not found")

        last_error: Optional[BaseException] = None

        for attempt in range(retries + 1):
            try:
                result = await adapter.execute_swap(task.params, keypair)
            except SafetyError as e:
                logger.error("swap_rejected_unsafe", wallet_id=task.wallet_id, dex=adapter.name, error=str(e))
                last_error = e
                break
            except Exception as e:
                last_error = e
                if attempt < retries:
                    delay_ms = self.config.tx_retry_delay_ms * (2 ** attempt)
                    logger.warning(
                        "swap_attempt_failed",
                        wallet_id=task.wallet_id,
                        attempt=attempt + 1,
                        retry_in_ms=delay_ms,
                        error=str(e),
                    )
                    await asyncio.sleep(delay_ms / 1000)
                continue

            confirmed = await self._record_terminal(
                record.confirmed(result.signature, result.output_amount)
            )
            logger.info(
                "swap_confirmed",
                wallet_id=task.wallet_id,
                token=task.token_mint[:8],
                direction=task.direction.value,
                dex=adapter.name,
                signature=result.signature,
                attempts=attempt + 1,
            )

            if self.config.platform_fee_enabled:
                self.detach(self._send_platform_fee(keypair, task.amount_sol), "platform_fee")
            if self.notifier:
                self.detach(self.notifier.notify_tx_confirmed(confirmed), "notify_tx_confirmed")
            return confirmed

        return await self._fail(record, str(last_error) or type(last_error).__name__)

    def _synthesize_failure(self, adapter: VenueAdapter, task: SwapTask, error: BaseException) -> TransactionRecord:
        logger.error("swap_task_crashed", wallet_id=task.wallet_id, error=str(error))
        return TransactionRecord.pending(task, adapter.name).failed(str(error) or type(error).__name__)

    async def execute_parallel_swaps(
        self, adapter: VenueAdapter, tasks: List[SwapTask]
    ) -> List[TransactionRecord]:
        """Run all tasks concurrently. One record per task, in input order."""
        results = await asyncio.gather(
            *(self.execute_with_retry(adapter, task) for task in tasks),
            return_exceptions=True,
        )

        records = []
        for task, result in zip(tasks, results):
            if isinstance(result, BaseException):
                records.append(self._synthesize_failure(adapter, task, result))
            else:
                records.append(result)
        return records

    async def execute_sequential_swaps(
        self, adapter: VenueAdapter, tasks: List[SwapTask], delay_ms: int = 0
    ) -> List[TransactionRecord]:
        """Run tasks one at a time, in order, with a fixed delay between them."""
        records: List[TransactionRecord] = []

        for i, task in enumerate(tasks):
            try:
                records.append(await self.execute_with_retry(adapter, task))
            except Exception as e:
                records.append(self._synthesize_failure(adapter, task, e))

            if delay_ms > 0 and i < len(tasks) - 1:
                await asyncio.sleep(delay_ms / 1000)

        return records


def create_engine(
    config: Config,
    store: TransactionStore,
    wallets: WalletRegistry,
    rpc: RPCClient,
    notifier: Optional[TelegramNotifier] = None,
    events: Optional[EventBus] = None,
) -> TransactionEngine:
    """Factory function to create the execution engine."""
    return TransactionEngine(config, store, wallets, rpc, notifier, events)
