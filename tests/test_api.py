"""
Tests for the control API.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient

from conftest import make_config
from fleetswap.api import create_app
from fleetswap.config import BundleConfig, CopyTradeConfig
from fleetswap.errors import BotAlreadyRunning, FatalMonitorError
from fleetswap.models import BotMode, BotState
from fleetswap.pipeline_stats import PipelineStats

TARGET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
MINT = "Ey59PH7Z4BFU4HjyKnyMdWt5GGN76KazTAwQihoUXRnk"


def runner(mode: BotMode):
    r = MagicMock()
    r.mode = mode
    r.state = BotState(mode=mode)
    r.running = False
    r.start = AsyncMock()
    return r


@pytest.fixture
def services():
    s = MagicMock()
    s.config = make_config(api_token="s3cret")
    s.copy_trader = runner(BotMode.COPYTRADE)
    s.copy_trader.stats = PipelineStats()
    s.copy_trader.pipeline_summary.return_value = "funnel"
    s.bundle_bot = runner(BotMode.BUNDLE)
    s.volume_bot = runner(BotMode.VOLUME)
    s.store.list_transactions = AsyncMock(return_value=[])
    s.store.list_detected_trades = AsyncMock(return_value=[])
    return s


@pytest.fixture
def client(services):
    c = TestClient(create_app(services))
    c.headers.update({"Authorization": "Bearer s3cret"})
    return c


def copytrade_body(**overrides):
    body = {"target_wallet": TARGET, "dex": "jupiter", "wallet_ids": ["w1", "w2"]}
    body.update(overrides)
    return body


class TestAuth:
    def test_missing_token(self, services):
        response = TestClient(create_app(services)).get("/state")

        assert response.status_code == 401

    def test_open_when_no_token_configured(self, services):
        services.config = make_config(api_token=None)

        assert TestClient(create_app(services)).get("/state").status_code == 200


class TestState:
    def test_all_runners(self, client):
        data = client.get("/state").json()

        assert set(data) == {"copytrade", "bundle", "volume"}
        assert data["copytrade"]["status"] == "idle"
        assert data["volume"]["mode"] == "volume"

    def test_pipeline(self, client, services):
        services.copy_trader.stats.incr("total_polls")

        assert client.get("/pipeline").json()["total_polls"] == 1
        assert client.get("/pipeline/summary").json() == {"summary": "funnel"}


class TestCopyTrade:
    """Start/stop the copy-trade monitor."""

    def test_start(self, client, services):
        response = client.post("/copytrade/start", json=copytrade_body(amount_mode="proportional"))

        assert response.status_code == 200
        cfg = services.copy_trader.start.await_args.args[0]
        assert isinstance(cfg, CopyTradeConfig)
        assert cfg.amount_mode == "proportional"
        assert cfg.wallet_ids == ["w1", "w2"]

    def test_invalid_body(self, client, services):
        response = client.post("/copytrade/start", json=copytrade_body(wallet_ids=[]))

        assert response.status_code == 422
        services.copy_trader.start.assert_not_awaited()

    def test_already_running(self, client, services):
        services.copy_trader.start.side_effect = BotAlreadyRunning("copytrade bot is already running")

        assert client.post("/copytrade/start", json=copytrade_body()).status_code == 409

    def test_cursor_failure(self, client, services):
        services.copy_trader.start.side_effect = FatalMonitorError("Failed to fetch initial signatures")

        response = client.post("/copytrade/start", json=copytrade_body())

        assert response.status_code == 502
        assert "initial signatures" in response.json()["detail"]

    def test_stop(self, client, services):
        assert client.post("/copytrade/stop").status_code == 200
        services.copy_trader.stop.assert_called_once()


class TestBots:
    """Start/stop the bundle and volume bots."""

    def test_start_bundle(self, client, services):
        response = client.post("/bot/start", json={"mode": "bundle", "config": {
            "token_mint": MINT, "dex": "raydium", "wallet_ids": ["w1"], "direction": "buy", "amount_sol": 0.1,
        }})

        assert response.status_code == 200
        assert isinstance(services.bundle_bot.start.await_args.args[0], BundleConfig)

    def test_other_bot_running(self, client, services):
        services.bundle_bot.running = True

        response = client.post("/bot/start", json={"mode": "volume", "config": {}})

        assert response.status_code == 409
        services.volume_bot.start.assert_not_awaited()

    def test_bad_config(self, client):
        response = client.post("/bot/start", json={"mode": "volume", "config": {"colour": "blue"}})

        assert response.status_code == 400

    def test_unknown_venue_then_retry(self, client, services):
        services.bundle_bot.start.side_effect = [ValueError("Unknown dex: 'orca'"), None]
        config = {"token_mint": MINT, "wallet_ids": ["w1"], "direction": "buy", "amount_sol": 0.1}

        rejected = client.post("/bot/start", json={"mode": "bundle", "config": {**config, "dex": "orca"}})
        accepted = client.post("/bot/start", json={"mode": "bundle", "config": {**config, "dex": "raydium"}})

        assert rejected.status_code == 400
        assert "Unknown dex" in rejected.json()["detail"]
        assert accepted.status_code == 200

    def test_stop(self, client, services):
        client.post("/bot/stop")

        services.bundle_bot.stop.assert_called_once()
        services.volume_bot.stop.assert_called_once()


class TestHistory:
    def test_transactions_limit(self, client, services):
        assert client.get("/transactions?limit=5").json() == []
        services.store.list_transactions.assert_awaited_once_with(limit=5)

    def test_detected_trades_pagination(self, client, services):
        client.get("/detected-trades?limit=10&offset=20")

        services.store.list_detected_trades.assert_awaited_once_with(limit=10, offset=20)

    def test_limit_validated(self, client):
        assert client.get("/transactions?limit=0").status_code == 422
