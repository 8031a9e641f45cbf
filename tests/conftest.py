"""
Shared fixtures for fleetswap tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from fleetswap.config import Config, JUPITER_API_BASE, RAYDIUM_API_BASE
from fleetswap.models import TransactionRecord
from fleetswap.store import TransactionStore
from fleetswap.wallet import WalletRegistry


def make_config(**overrides) -> Config:
    values = dict(
        rpc_url="https://api.devnet.solana.com",
        network="devnet",
        wallets_file="wallets.json",
        database_path=":memory:",
        slippage_bps=300,
        tx_retry_count=3,
        tx_retry_delay_ms=1000,
        confirm_timeout_ms=60_000,
        platform_fee_wallet=None,
        platform_fee_bps=150,
        jupiter_api_base=JUPITER_API_BASE,
        raydium_api_base=RAYDIUM_API_BASE,
        telegram_bot_token=None,
        telegram_chat_id=None,
        api_host="127.0.0.1",
        api_port=8765,
        api_token=None,
        log_level="INFO",
    )
    values.update(overrides)
    return Config(**values)


def unsigned_transfer_tx(payer: Pubkey, source: Pubkey, dest: Pubkey, lamports: int) -> VersionedTransaction:
    """An unsigned v0 transaction with a single system transfer."""
    ix = transfer(TransferParams(from_pubkey=source, to_pubkey=dest, lamports=lamports))
    message = MessageV0.try_compile(payer, [ix], [], Hash.default())
    signers = message.header.num_required_signatures
    return VersionedTransaction.populate(message, [Signature.default()] * signers)


def fake_response(status: int = 200, payload=None, text: str = "error"):
    """Async context manager standing in for an aiohttp response."""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value=text)
    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


async def confirm_all(adapter, tasks):
    return [TransactionRecord.pending(t, "jupiter").confirmed(f"sig-{t.wallet_id}", 1_000) for t in tasks]


@pytest.fixture
def config() -> Config:
    return make_config()


@pytest.fixture
def token_mint() -> str:
    return str(Keypair().pubkey())


@pytest.fixture
def wallets() -> WalletRegistry:
    registry = WalletRegistry()
    registry.add("main", Keypair(), label="Main", is_main=True)
    registry.add("w1", Keypair())
    registry.add("w2", Keypair())
    registry.add("w3", Keypair())
    return registry


@pytest.fixture
def store(tmp_path):
    s = TransactionStore(tmp_path / "fleetswap.db")
    yield s
    s.close()


@pytest.fixture
def adapter():
    """Venue adapter double; set execute_swap per test."""
    a = MagicMock()
    a.name = "jupiter"
    a.execute_swap = AsyncMock()
    a.close = AsyncMock()
    return a
