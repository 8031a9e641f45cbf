"""
Control API - start/stop the runners and read their state over HTTP.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Literal

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
import structlog
import uvicorn

from .config import BundleConfig, CopyTradeConfig, VolumeConfig, DEFAULT_SLIPPAGE_BPS
from .errors import BotAlreadyRunning, FatalMonitorError
from .services import Services

logger = structlog.get_logger(__name__)

SSE_KEEPALIVE_SECONDS = 15


class CopyTradeRequest(BaseModel):
    target_wallet: str = Field(min_length=32, max_length=44)
    dex: Literal["jupiter", "raydium", "pumpfun"]
    wallet_ids: List[str] = Field(min_length=1)
    copy_buys: bool = True
    copy_sells: bool = True
    amount_mode: Literal["fixed", "proportional"] = "fixed"
    fixed_amount_sol: float = 0.01
    slippage_bps: int = Field(DEFAULT_SLIPPAGE_BPS, ge=1, le=5000)
    poll_interval_ms: int = Field(2_000, ge=0)
    copy_delay_ms: int = Field(0, ge=0)


class BotStartRequest(BaseModel):
    mode: Literal["bundle", "volume"]
    config: Dict[str, Any]


def create_app(services: Services) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.shutdown()

    app = FastAPI(title="fleetswap", lifespan=lifespan)
    app.state.services = services

    def check_auth(request: Request) -> None:
        token = services.config.api_token
        if not token:
            return
        if request.headers.get("Authorization") != f"Bearer {token}":
            raise HTTPException(status_code=401, detail="Not authenticated")

    guarded = [Depends(check_auth)]

    @app.get("/state", dependencies=guarded)
    async def get_state():
        return {
            "copytrade": services.copy_trader.state.to_dict(),
            "bundle": services.bundle_bot.state.to_dict(),
            "volume": services.volume_bot.state.to_dict(),
        }

    @app.post("/copytrade/start", dependencies=guarded)
    async def start_copytrade(body: CopyTradeRequest):
        try:
            await services.copy_trader.start(CopyTradeConfig(**body.model_dump()))
        except BotAlreadyRunning as e:
            raise HTTPException(status_code=409, detail=str(e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except FatalMonitorError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return services.copy_trader.state.to_dict()

    @app.post("/copytrade/stop", dependencies=guarded)
    async def stop_copytrade():
        services.copy_trader.stop()
        return services.copy_trader.state.to_dict()

    @app.post("/bot/start", dependencies=guarded)
    async def start_bot(body: BotStartRequest):
        bot = services.bundle_bot if body.mode == "bundle" else services.volume_bot
        other = services.volume_bot if body.mode == "bundle" else services.bundle_bot
        if other.running:
            raise HTTPException(status_code=409, detail=f"{other.mode.value} bot is already running")

        config_cls = BundleConfig if body.mode == "bundle" else VolumeConfig
        try:
            await bot.start(config_cls(**body.config))
        except BotAlreadyRunning as e:
            raise HTTPException(status_code=409, detail=str(e))
        except (TypeError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e))
        return bot.state.to_dict()

    @app.post("/bot/stop", dependencies=guarded)
    async def stop_bot():
        services.bundle_bot.stop()
        services.volume_bot.stop()
        return {
            "bundle": services.bundle_bot.state.to_dict(),
            "volume": services.volume_bot.state.to_dict(),
        }

    @app.get("/detected-trades", dependencies=guarded)
    async def detected_trades(limit: int = Query(50, ge=1, le=500), offset: int = Query(0, ge=0)):
        trades = await services.store.list_detected_trades(limit=limit, offset=offset)
        return [t.to_dict() for t in trades]

    @app.get("/transactions", dependencies=guarded)
    async def transactions(limit: int = Query(100, ge=1, le=1000)):
        records = await services.store.list_transactions(limit=limit)
        return [r.to_dict() for r in records]

    @app.get("/pipeline", dependencies=guarded)
    async def pipeline():
        return services.copy_trader.stats.snapshot()

    @app.get("/pipeline/summary", dependencies=guarded)
    async def pipeline_summary():
        return {"summary": services.copy_trader.pipeline_summary()}

    @app.get("/events", dependencies=guarded)
    async def events(request: Request):
        queue = services.events.create_listener()

        async def stream():
            try:
                while not await request.is_disconnected():
                    try:
                        event = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
                    except asyncio.TimeoutError:
                        yield ": keepalive\n\n"
                        continue
                    yield f"event: {event.topic}\ndata: {json.dumps(event.to_dict())}\n\n"
            finally:
                services.events.remove_listener(queue)

        return StreamingResponse(stream(), media_type="text/event-stream")

    return app


def run_api(services: Services, host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Run the control API server."""
    host = host or services.config.api_host
    port = port or services.config.api_port
    logger.info("api_starting", host=host, port=port)
    uvicorn.run(create_app(services), host=host, port=port, log_config=None)
