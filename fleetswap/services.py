"""
Process-wide service container: one instance per running process, built
from Config and passed explicitly to the API and CLI.
"""

from dataclasses import dataclass
import structlog

from .bundle_bot import BundleBot
from .config import Config
from .copy_trader import CopyTradeMonitor
from .engine import TransactionEngine, create_engine
from .events import EventBus
from .notifier import TelegramNotifier, create_notifier
from .rpc import RPCClient, create_rpc_client
from .store import TransactionStore, create_store
from .volume_bot import VolumeBot
from .wallet import WalletRegistry, create_wallet_registry

logger = structlog.get_logger(__name__)


@dataclass
class Services:
    config: Config
    rpc: RPCClient
    store: TransactionStore
    wallets: WalletRegistry
    events: EventBus
    notifier: TelegramNotifier
    engine: TransactionEngine
    copy_trader: CopyTradeMonitor
    bundle_bot: BundleBot
    volume_bot: VolumeBot

    async def shutdown(self) -> None:
        """Stop all runners, flush side effects and release connections."""
        for runner in (self.copy_trader, self.bundle_bot, self.volume_bot):
            runner.stop()
        for runner in (self.copy_trader, self.bundle_bot, self.volume_bot):
            await runner.wait()
        await self.engine.drain()
        await self.notifier.close()
        await self.rpc.close()
        self.store.close()
        logger.info("services_shutdown")


def build_services(config: Config) -> Services:
    rpc = create_rpc_client(config)
    store = create_store(config.database_path)
    wallets = create_wallet_registry(config.wallets_file)
    events = EventBus()
    notifier = create_notifier(config)
    engine = create_engine(config, store, wallets, rpc, notifier, events)

    return Services(
        config=config,
        rpc=rpc,
        store=store,
        wallets=wallets,
        events=events,
        notifier=notifier,
        engine=engine,
        copy_trader=CopyTradeMonitor(config, rpc, engine, store, wallets, events, notifier),
        bundle_bot=BundleBot(config, rpc, engine, wallets, events, notifier),
        volume_bot=VolumeBot(config, rpc, engine, wallets, events, notifier),
    )
