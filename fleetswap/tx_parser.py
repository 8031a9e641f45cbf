"""
Transaction Parser - Infers swaps from a wallet's jsonParsed transactions.
Identifies the venue by program id and the trade from balance deltas.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Dict, Any
import structlog

from .config import (
    SOL_MINT,
    LAMPORTS_PER_SOL,
    MIN_DETECTED_SOL,
    JUPITER_PROGRAM_ID,
    RAYDIUM_AMM_PROGRAM_ID,
    PUMPFUN_PROGRAM_ID,
)
from .errors import ParseError
from .models import Direction, VenueKind

logger = structlog.get_logger(__name__)

VENUE_PROGRAMS = {
    JUPITER_PROGRAM_ID: VenueKind.JUPITER,
    RAYDIUM_AMM_PROGRAM_ID: VenueKind.RAYDIUM,
    PUMPFUN_PROGRAM_ID: VenueKind.PUMPFUN,
}


class SkipReason(str, Enum):
    META_ERROR = "meta_error"
    UNKNOWN_DEX = "unknown_dex"
    NO_SWAP = "no_swap"


@dataclass(frozen=True)
class ParsedSwap:
    """A swap made by the target wallet."""
    token_mint: str
    direction: Direction
    amount_sol: float
    dex: VenueKind

    @property
    def is_buy(self) -> bool:
        return self.direction == Direction.BUY


@dataclass(frozen=True)
class ParseResult:
    swap: Optional[ParsedSwap] = None
    reason: Optional[SkipReason] = None


def get_account_keys(tx_data: Dict[str, Any]) -> List[str]:
    """Static account keys followed by lookup-table loaded addresses."""
    message = tx_data.get("transaction", {}).get("message", {})
    meta = tx_data.get("meta") or {}
    keys = []

    for key in message.get("accountKeys", []):
        if isinstance(key, str):
            keys.append(key)
        elif isinstance(key, dict):
            keys.append(key.get("pubkey", ""))

    # Loaded addresses (for versioned transactions)
    loaded = meta.get("loadedAddresses") or {}
    keys.extend(loaded.get("writable", []))
    keys.extend(loaded.get("readonly", []))

    return keys


def identify_venue(account_keys: List[str]) -> Optional[VenueKind]:
    """The venue of the first known program in account-key order."""
    for key in account_keys:
        venue = VENUE_PROGRAMS.get(key)
        if venue is not None:
            return venue
    return None


def _ui_amount(balance: Dict[str, Any]) -> float:
    return float((balance.get("uiTokenAmount") or {}).get("uiAmount") or 0)


def _find_balance(balances: List[Dict[str, Any]], owner: str, mint: str, account_index: int) -> Optional[Dict]:
    for b in balances:
        if b.get("owner") == owner and b.get("mint") == mint and b.get("accountIndex") == account_index:
            return b
    return None


def token_balance_deltas(meta: Dict[str, Any], wallet: str) -> Dict[str, float]:
    """
    Non-zero post - pre token balance changes per mint for accounts owned by
    `wallet`, in first-seen order. A missing pre or post entry counts as zero.
    """
    pre_balances = meta.get("preTokenBalances") or []
    post_balances = meta.get("postTokenBalances") or []
    changes: Dict[str, float] = {}

    for post in post_balances:
        if post.get("owner") != wallet:
            continue
        mint = post.get("mint")
        pre = _find_balance(pre_balances, wallet, mint, post.get("accountIndex"))
        change = _ui_amount(post) - (_ui_amount(pre) if pre else 0.0)
        if change != 0:
            changes[mint] = change

    # Accounts closed during the transaction only appear in pre balances
    for pre in pre_balances:
        if pre.get("owner") != wallet:
            continue
        mint = pre.get("mint")
        if mint in changes:
            continue
        post = _find_balance(post_balances, wallet, mint, pre.get("accountIndex"))
        change = (_ui_amount(post) if post else 0.0) - _ui_amount(pre)
        if change != 0:
            changes[mint] = change

    return changes


def native_delta_sol(tx_data: Dict[str, Any], wallet: str, account_keys: Optional[List[str]] = None) -> float:
    """Absolute change of the wallet's SOL balance across the transaction."""
    meta = tx_data.get("meta") or {}
    keys = account_keys if account_keys is not None else get_account_keys(tx_data)
    if wallet not in keys:
        return 0.0

    index = keys.index(wallet)
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []
    if index >= len(pre) or index >= len(post):
        return 0.0
    return abs(post[index] - pre[index]) / LAMPORTS_PER_SOL


class TransactionParser:
    """
    Parses transactions of a single target wallet into swaps.
    """

    def __init__(self, target_wallet: str, min_sol_value: float = MIN_DETECTED_SOL):
        """
        Args:
            target_wallet: Wallet whose trades are being copied
            min_sol_value: Floor for the detected SOL amount, so that
                replicated tasks are never zero-sized
        """
        self.target_wallet = target_wallet
        self.min_sol_value = min_sol_value

    def parse(self, tx_data: Dict[str, Any]) -> ParseResult:
        """
        Raises:
            ParseError: tx_data does not have the shape of a jsonParsed transaction
        """
        try:
            return self._parse(tx_data)
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ParseError(f"Malformed transaction: {e}") from e

    def _parse(self, tx_data: Dict[str, Any]) -> ParseResult:
        meta = tx_data.get("meta")
        if not meta or meta.get("err") is not None:
            return ParseResult(reason=SkipReason.META_ERROR)

        account_keys = get_account_keys(tx_data)
        dex = identify_venue(account_keys)
        if dex is None:
            return ParseResult(reason=SkipReason.UNKNOWN_DEX)

        token_mint = None
        direction = None
        for mint, change in token_balance_deltas(meta, self.target_wallet).items():
            if mint == SOL_MINT:
                continue
            token_mint = mint
            direction = Direction.BUY if change > 0 else Direction.SELL
            break

        if token_mint is None:
            logger.debug("no_token_change", wallet=self.target_wallet[:8], dex=dex.value)
            return ParseResult(reason=SkipReason.NO_SWAP)

        amount_sol = max(native_delta_sol(tx_data, self.target_wallet, account_keys), self.min_sol_value)

        return ParseResult(swap=ParsedSwap(
            token_mint=token_mint,
            direction=direction,
            amount_sol=amount_sol,
            dex=dex,
        ))


def parse_swap_from_transaction(tx_data: Dict[str, Any], target_wallet: str) -> ParseResult:
    return TransactionParser(target_wallet).parse(tx_data)
