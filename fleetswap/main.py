#!/usr/bin/env python3
"""
fleetswap - multi-venue Solana swap engine with copy trading.
Main entry point.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import List, Optional
import structlog

from .api import run_api
from .config import (
    load_config,
    Config,
    CopyTradeConfig,
    BundleConfig,
    VolumeConfig,
    SOL_MINT,
    DEFAULT_SLIPPAGE_BPS,
)
from .errors import FleetSwapError
from .models import SwapParams, sol_to_lamports
from .services import Services, build_services
from .venues import VENUES, create_venue


# Configure structured logging
def configure_logging(log_level: str) -> None:
    """Configure structured JSON logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper())
    )


logger = structlog.get_logger()

VENUE_CHOICES = [kind.value for kind in VENUES]


def _wallet_ids(value: str) -> List[str]:
    return [w.strip() for w in value.split(",") if w.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fleetswap", description=__doc__)
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the control API")

    sub.add_parser("wallets", help="List managed wallets")

    quote = sub.add_parser("quote", help="Quote a swap on one venue")
    quote.add_argument("--dex", choices=VENUE_CHOICES, required=True)
    quote.add_argument("--mint", required=True)
    quote.add_argument("--side", choices=["buy", "sell"], default="buy")
    quote.add_argument("--amount", type=float, required=True,
                       help="SOL for buys, token base units for sells")
    quote.add_argument("--slippage-bps", type=int, default=DEFAULT_SLIPPAGE_BPS)
    quote.add_argument("--payer", default=None, help="Public key used as payer (defaults to the main wallet)")

    copy = sub.add_parser("copytrade", help="Copy a target wallet's swaps")
    copy.add_argument("--target", required=True)
    copy.add_argument("--dex", choices=VENUE_CHOICES, required=True)
    copy.add_argument("--wallets", type=_wallet_ids, required=True, help="Comma-separated wallet ids")
    copy.add_argument("--no-buys", action="store_true")
    copy.add_argument("--no-sells", action="store_true")
    copy.add_argument("--proportional", action="store_true")
    copy.add_argument("--amount-sol", type=float, default=0.01)
    copy.add_argument("--slippage-bps", type=int, default=DEFAULT_SLIPPAGE_BPS)
    copy.add_argument("--poll-ms", type=int, default=2_000)
    copy.add_argument("--copy-delay-ms", type=int, default=0)

    bundle = sub.add_parser("bundle", help="Swap all wallets in parallel for N rounds")
    bundle.add_argument("--mint", required=True)
    bundle.add_argument("--dex", choices=VENUE_CHOICES, required=True)
    bundle.add_argument("--wallets", type=_wallet_ids, required=True)
    bundle.add_argument("--side", choices=["buy", "sell"], default="buy")
    bundle.add_argument("--amount-sol", type=float, required=True)
    bundle.add_argument("--slippage-bps", type=int, default=DEFAULT_SLIPPAGE_BPS)
    bundle.add_argument("--rounds", type=int, default=1)
    bundle.add_argument("--delay-ms", type=int, default=0)

    volume = sub.add_parser("volume", help="Round-robin buy/sell volume")
    volume.add_argument("--mint", required=True)
    volume.add_argument("--dex", choices=VENUE_CHOICES, required=True)
    volume.add_argument("--wallets", type=_wallet_ids, required=True)
    volume.add_argument("--buy-sol", type=float, required=True)
    volume.add_argument("--sell-pct", type=float, default=100.0)
    volume.add_argument("--slippage-bps", type=int, default=DEFAULT_SLIPPAGE_BPS)
    volume.add_argument("--min-delay-ms", type=int, default=1_000)
    volume.add_argument("--max-delay-ms", type=int, default=5_000)
    volume.add_argument("--max-rounds", type=int, default=0)

    return parser


async def run_quote(services: Services, args: argparse.Namespace) -> None:
    payer = args.payer
    if payer is None:
        wallets = services.wallets.list_wallets()
        if not wallets:
            raise FleetSwapError("No wallets configured; pass --payer")
        payer = wallets[0].public_key

    is_buy = args.side == "buy"
    params = SwapParams(
        input_mint=SOL_MINT if is_buy else args.mint,
        output_mint=args.mint if is_buy else SOL_MINT,
        amount=sol_to_lamports(args.amount) if is_buy else int(args.amount),
        slippage_bps=args.slippage_bps,
        payer=payer,
    )
    adapter = create_venue(args.dex, services.config, services.rpc)
    try:
        quote = await adapter.get_quote(params)
    finally:
        await adapter.close()
    print(json.dumps({
        "dex": quote.dex,
        "input_mint": quote.input_mint,
        "output_mint": quote.output_mint,
        "input_amount": quote.input_amount,
        "output_amount": quote.output_amount,
        "price_impact_pct": quote.price_impact_pct,
    }, indent=2))


async def run_foreground(services: Services, args: argparse.Namespace) -> None:
    """Run one runner until it finishes or SIGINT/SIGTERM."""
    if args.command == "copytrade":
        runner = services.copy_trader
        start = runner.start(CopyTradeConfig(
            target_wallet=args.target,
            dex=args.dex,
            wallet_ids=args.wallets,
            copy_buys=not args.no_buys,
            copy_sells=not args.no_sells,
            amount_mode="proportional" if args.proportional else "fixed",
            fixed_amount_sol=args.amount_sol,
            slippage_bps=args.slippage_bps,
            poll_interval_ms=args.poll_ms,
            copy_delay_ms=args.copy_delay_ms,
        ))
    elif args.command == "bundle":
        runner = services.bundle_bot
        start = runner.start(BundleConfig(
            token_mint=args.mint,
            dex=args.dex,
            wallet_ids=args.wallets,
            direction=args.side,
            amount_sol=args.amount_sol,
            slippage_bps=args.slippage_bps,
            rounds=args.rounds,
            delay_between_rounds_ms=args.delay_ms,
        ))
    else:
        runner = services.volume_bot
        start = runner.start(VolumeConfig(
            token_mint=args.mint,
            dex=args.dex,
            wallet_ids=args.wallets,
            buy_amount_sol=args.buy_sol,
            sell_percentage=args.sell_pct,
            slippage_bps=args.slippage_bps,
            min_delay_ms=args.min_delay_ms,
            max_delay_ms=args.max_delay_ms,
            max_rounds=args.max_rounds,
        ))

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runner.stop)

    await start
    await runner.wait()

    if runner.mode.value == "copytrade":
        print(runner.pipeline_summary())


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        raise SystemExit("use the console entry point to run the API server")
    config: Config = load_config()
    configure_logging(config.log_level)

    services = build_services(config)

    if args.command == "wallets":
        for w in services.wallets.list_wallets():
            print(f"{w.id}\t{w.public_key}\t{w.label}{' (main)' if w.is_main else ''}")
        services.store.close()
        return 0

    try:
        if args.command == "quote":
            await run_quote(services, args)
        else:
            await run_foreground(services, args)
    except (FleetSwapError, ValueError) as e:
        logger.error("command_failed", command=args.command, error=str(e))
        return 1
    finally:
        await services.shutdown()
    return 0


def run() -> None:
    """Console entry point."""
    argv = sys.argv[1:]
    args = build_parser().parse_args(argv)

    # uvicorn owns the event loop for the API server
    if args.command == "serve":
        config = load_config()
        configure_logging(config.log_level)
        run_api(build_services(config))
        return

    try:
        sys.exit(asyncio.run(main(argv)))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
