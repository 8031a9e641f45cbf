"""
Unit tests for swap inference from jsonParsed transactions.
"""

from typing import Optional

import pytest

from fleetswap.config import (
    SOL_MINT,
    JUPITER_PROGRAM_ID,
    RAYDIUM_AMM_PROGRAM_ID,
    PUMPFUN_PROGRAM_ID,
)
from fleetswap.errors import ParseError
from fleetswap.models import Direction, VenueKind
from fleetswap.tx_parser import (
    SkipReason,
    TransactionParser,
    get_account_keys,
    identify_venue,
    parse_swap_from_transaction,
    token_balance_deltas,
)

TARGET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
MINT = "Ey59PH7Z4BFU4HjyKnyMdWt5GGN76KazTAwQihoUXRnk"
OTHER = "3Kz8Qd2kPp4cY7v1tqTn1QZ1bGm3xw5sC8RkYbH1Xf2e"


def token_balance(mint: str, ui_amount: Optional[float], owner: str = TARGET, index: int = 2):
    return {
        "accountIndex": index,
        "mint": mint,
        "owner": owner,
        "uiTokenAmount": {"uiAmount": ui_amount},
    }


def make_tx(
    programs=(JUPITER_PROGRAM_ID,),
    pre_lamports=5_000_000_000,
    post_lamports=4_000_000_000,
    pre_tokens=(),
    post_tokens=(),
    loaded=None,
    err=None,
):
    keys = [{"pubkey": TARGET, "signer": True, "writable": True}]
    keys += [{"pubkey": p, "signer": False, "writable": False} for p in programs]
    meta = {
        "err": err,
        "preBalances": [pre_lamports] + [1] * len(programs),
        "postBalances": [post_lamports] + [1] * len(programs),
        "preTokenBalances": list(pre_tokens),
        "postTokenBalances": list(post_tokens),
    }
    if loaded is not None:
        meta["loadedAddresses"] = loaded
    return {"transaction": {"message": {"accountKeys": keys}}, "meta": meta}


class TestAccountKeys:
    """Static keys plus lookup-table addresses."""

    def test_static_and_loaded(self):
        tx = make_tx(programs=(), loaded={"writable": [OTHER], "readonly": [PUMPFUN_PROGRAM_ID]})

        assert get_account_keys(tx) == [TARGET, OTHER, PUMPFUN_PROGRAM_ID]

    def test_plain_string_keys(self):
        tx = {"transaction": {"message": {"accountKeys": [TARGET, OTHER]}}, "meta": {}}

        assert get_account_keys(tx) == [TARGET, OTHER]


class TestIdentifyVenue:
    """Program id matching."""

    def test_each_venue(self):
        assert identify_venue([TARGET, JUPITER_PROGRAM_ID]) == VenueKind.JUPITER
        assert identify_venue([RAYDIUM_AMM_PROGRAM_ID]) == VenueKind.RAYDIUM
        assert identify_venue([PUMPFUN_PROGRAM_ID]) == VenueKind.PUMPFUN

    def test_first_program_in_key_order_wins(self):
        assert identify_venue([TARGET, PUMPFUN_PROGRAM_ID, JUPITER_PROGRAM_ID]) == VenueKind.PUMPFUN
        assert identify_venue([RAYDIUM_AMM_PROGRAM_ID, JUPITER_PROGRAM_ID]) == VenueKind.RAYDIUM
        assert identify_venue([JUPITER_PROGRAM_ID, RAYDIUM_AMM_PROGRAM_ID]) == VenueKind.JUPITER

    def test_unknown(self):
        assert identify_venue([TARGET, OTHER]) is None


class TestTokenBalanceDeltas:
    """Per-mint balance changes for the target's accounts."""

    def test_new_account(self):
        meta = {"preTokenBalances": [], "postTokenBalances": [token_balance(MINT, 250.0)]}

        assert token_balance_deltas(meta, TARGET) == {MINT: 250.0}

    def test_closed_account(self):
        meta = {"preTokenBalances": [token_balance(MINT, 80.0)], "postTokenBalances": []}

        assert token_balance_deltas(meta, TARGET) == {MINT: -80.0}

    def test_ignores_other_owners(self):
        meta = {
            "preTokenBalances": [token_balance(MINT, 10.0, owner=OTHER)],
            "postTokenBalances": [token_balance(MINT, 90.0, owner=OTHER)],
        }

        assert token_balance_deltas(meta, TARGET) == {}

    def test_null_ui_amount_reads_as_zero(self):
        meta = {
            "preTokenBalances": [token_balance(MINT, None)],
            "postTokenBalances": [token_balance(MINT, 5.0)],
        }

        assert token_balance_deltas(meta, TARGET) == {MINT: 5.0}


class TestTransactionParser:
    """End-to-end inference and skip reasons."""

    def setup_method(self):
        self.parser = TransactionParser(TARGET)

    def test_buy(self):
        tx = make_tx(post_tokens=[token_balance(MINT, 1_000.0)])

        result = self.parser.parse(tx)

        assert result.reason is None
        assert result.swap.token_mint == MINT
        assert result.swap.direction == Direction.BUY
        assert result.swap.is_buy
        assert result.swap.amount_sol == 1.0
        assert result.swap.dex == VenueKind.JUPITER

    def test_sell(self):
        tx = make_tx(
            programs=(RAYDIUM_AMM_PROGRAM_ID,),
            pre_lamports=1_000_000_000,
            post_lamports=3_500_000_000,
            pre_tokens=[token_balance(MINT, 1_000.0)],
            post_tokens=[token_balance(MINT, 0.0)],
        )

        result = self.parser.parse(tx)

        assert result.swap.direction == Direction.SELL
        assert result.swap.amount_sol == 2.5
        assert result.swap.dex == VenueKind.RAYDIUM

    def test_dust_sol_change_is_floored(self):
        tx = make_tx(pre_lamports=5_000_000, post_lamports=4_999_900, post_tokens=[token_balance(MINT, 3.0)])

        assert self.parser.parse(tx).swap.amount_sol == 0.001

    def test_venue_in_loaded_addresses(self):
        tx = make_tx(
            programs=(),
            loaded={"writable": [], "readonly": [PUMPFUN_PROGRAM_ID]},
            post_tokens=[token_balance(MINT, 7.0)],
        )

        assert self.parser.parse(tx).swap.dex == VenueKind.PUMPFUN

    def test_meta_error(self):
        tx = make_tx(err={"InstructionError": [0, "Custom"]}, post_tokens=[token_balance(MINT, 1.0)])

        result = self.parser.parse(tx)

        assert result.swap is None
        assert result.reason == SkipReason.META_ERROR

    def test_missing_meta(self):
        assert self.parser.parse({"transaction": {"message": {}}, "meta": None}).reason == SkipReason.META_ERROR

    def test_venue_follows_account_order(self):
        tx = make_tx(programs=(PUMPFUN_PROGRAM_ID, JUPITER_PROGRAM_ID), post_tokens=[token_balance(MINT, 4.0)])

        assert self.parser.parse(tx).swap.dex == VenueKind.PUMPFUN

    def test_unknown_dex(self):
        tx = make_tx(programs=(OTHER,), post_tokens=[token_balance(MINT, 1.0)])

        assert self.parser.parse(tx).reason == SkipReason.UNKNOWN_DEX

    def test_no_token_change(self):
        assert self.parser.parse(make_tx()).reason == SkipReason.NO_SWAP

    def test_wrapped_sol_only_is_not_a_swap(self):
        tx = make_tx(post_tokens=[token_balance(SOL_MINT, 1.0)])

        assert self.parser.parse(tx).reason == SkipReason.NO_SWAP

    def test_wrapped_sol_skipped_in_favor_of_token(self):
        tx = make_tx(post_tokens=[token_balance(SOL_MINT, 1.0, index=3), token_balance(MINT, 9.0)])

        assert self.parser.parse(tx).swap.token_mint == MINT

    def test_malformed_transaction(self):
        with pytest.raises(ParseError, match="Malformed transaction"):
            self.parser.parse({"transaction": "garbage", "meta": {"err": None}})

    def test_malformed_token_amount(self):
        tx = make_tx(post_tokens=[token_balance(MINT, None)])
        tx["meta"]["postTokenBalances"][0]["uiTokenAmount"]["uiAmount"] = "n/a"

        with pytest.raises(ParseError):
            self.parser.parse(tx)

    def test_module_helper(self):
        tx = make_tx(post_tokens=[token_balance(MINT, 1.0)])

        assert parse_swap_from_transaction(tx, TARGET).swap.token_mint == MINT
