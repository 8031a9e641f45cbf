"""
Tests for the SQLite audit log.
"""

import pytest

from fleetswap.models import (
    BotMode,
    DetectedTrade,
    Direction,
    SwapTask,
    TransactionRecord,
    TxStatus,
    new_id,
)
from fleetswap.store import TransactionStore

MINT = "Ey59PH7Z4BFU4HjyKnyMdWt5GGN76KazTAwQihoUXRnk"


def pending_record(wallet_id="w1", created_at=None) -> TransactionRecord:
    task = SwapTask.for_wallet(
        wallet_id=wallet_id,
        wallet_public_key="9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM",
        token_mint=MINT,
        direction=Direction.BUY,
        amount=100_000_000,
        amount_sol=0.1,
        slippage_bps=300,
        bot_mode=BotMode.VOLUME,
        round=3,
    )
    record = TransactionRecord.pending(task, "raydium")
    if created_at is not None:
        record.created_at = created_at
    return record


def detected(signature: str, detected_at: int = 1) -> DetectedTrade:
    return DetectedTrade(
        id=new_id(),
        signature=signature,
        target_wallet="9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM",
        token_mint=MINT,
        direction=Direction.SELL,
        amount_sol=0.75,
        dex="pumpfun",
        detected_at=detected_at,
    )


@pytest.mark.asyncio
class TestTransactions:
    """Insert-pending then update-once lifecycle."""

    async def test_insert_and_get(self, store):
        record = pending_record()
        await store.insert_transaction(record)

        loaded = await store.get_transaction(record.id)

        assert loaded == record
        assert loaded.status == TxStatus.PENDING
        assert loaded.bot_mode == BotMode.VOLUME
        assert loaded.round == 3

    async def test_update_terminal(self, store):
        record = pending_record()
        await store.insert_transaction(record)

        await store.update_transaction(record.confirmed("sigC", 987))

        loaded = await store.get_transaction(record.id)
        assert loaded.status == TxStatus.CONFIRMED
        assert loaded.signature == "sigC"
        assert loaded.amount_token == 987

    async def test_update_failed(self, store):
        record = pending_record()
        await store.insert_transaction(record)

        await store.update_transaction(record.failed("slippage exceeded"))

        loaded = await store.get_transaction(record.id)
        assert loaded.status == TxStatus.FAILED
        assert loaded.error == "slippage exceeded"
        assert loaded.amount_token is None

    async def test_missing(self, store):
        assert await store.get_transaction("nope") is None

    async def test_list_newest_first(self, store):
        for i, ts in enumerate((100, 300, 200)):
            await store.insert_transaction(pending_record(wallet_id=f"w{i}", created_at=ts))

        records = await store.list_transactions(limit=2)

        assert [r.created_at for r in records] == [300, 200]

    async def test_clear(self, store):
        await store.insert_transaction(pending_record())
        await store.insert_transaction(pending_record())

        assert await store.clear_transactions() == 2
        assert await store.list_transactions() == []

    async def test_persists_across_reopen(self, tmp_path):
        path = tmp_path / "nested" / "audit.db"
        first = TransactionStore(path)
        record = pending_record()
        await first.insert_transaction(record)
        first.close()

        second = TransactionStore(path)
        try:
            assert (await second.get_transaction(record.id)).id == record.id
        finally:
            second.close()


@pytest.mark.asyncio
class TestDetectedTrades:
    """One row per source signature."""

    async def test_insert_once(self, store):
        assert await store.insert_detected_trade(detected("sigA")) is True
        assert await store.insert_detected_trade(detected("sigA")) is False
        assert await store.count_detected_trades() == 1

    async def test_mark_replicated(self, store):
        await store.insert_detected_trade(detected("sigA"))

        await store.mark_trade_replicated("sigA")

        trade = await store.get_detected_trade("sigA")
        assert trade.replicated is True
        assert trade.direction == Direction.SELL

    async def test_list_paginated(self, store):
        for i in range(5):
            await store.insert_detected_trade(detected(f"sig{i}", detected_at=i))

        page = await store.list_detected_trades(limit=2, offset=1)

        assert [t.signature for t in page] == ["sig3", "sig2"]
