"""
Pump.fun bonding-curve adapter.

Quotes come straight from the on-chain curve account using constant-product
math in integers; transactions are assembled locally (no aggregator).
"""

import hashlib
import struct
from dataclasses import dataclass
from typing import List, Tuple
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.sysvar import RENT
from solders.transaction import VersionedTransaction
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address
import structlog

from .config import PUMPFUN_PROGRAM_ID
from .dex import VenueAdapter
from .errors import QuoteError, BuildError
from .models import SwapParams, SwapQuote, VenueKind

logger = structlog.get_logger(__name__)

PUMP_FUN_PROGRAM = Pubkey.from_string(PUMPFUN_PROGRAM_ID)
PUMP_FUN_GLOBAL = Pubkey.from_string("4wTV1YmiEkRvAtNtsSGPtUrqRYQMe5SKy2uB4Jjaxnjf")
PUMP_FUN_FEE_RECIPIENT = Pubkey.from_string("CebN5WGQ4jvEPvsVU4EoHEpgzq1VV7AbCJ2kUKYhDLby")
PUMP_FUN_EVENT_AUTHORITY = Pubkey.from_string("Ce6TQqeHC9p8KetsN6JsjHK7UTZk7nasjjnr7XxXp9F1")

FEE_BASIS_POINTS = 100  # 1%

# Anchor instruction selectors
BUY_DISCRIMINATOR = hashlib.sha256(b"global:buy").digest()[:8]
SELL_DISCRIMINATOR = hashlib.sha256(b"global:sell").digest()[:8]

# discriminator(8) + 5 x u64 + complete flag
CURVE_STATE_MIN_LEN = 49


@dataclass(frozen=True)
class BondingCurveState:
    virtual_token_reserves: int
    virtual_sol_reserves: int
    real_token_reserves: int
    real_sol_reserves: int
    token_total_supply: int
    complete: bool

    @classmethod
    def from_account_data(cls, data: bytes) -> "BondingCurveState":
        if len(data) < CURVE_STATE_MIN_LEN:
            raise BuildError(f"Bonding curve account too short: {len(data)} bytes")
        vtok, vsol, rtok, rsol, supply = struct.unpack_from("<5Q", data, 8)
        return cls(
            virtual_token_reserves=vtok,
            virtual_sol_reserves=vsol,
            real_token_reserves=rtok,
            real_sol_reserves=rsol,
            token_total_supply=supply,
            complete=data[48] == 1,
        )


def calculate_buy_amount(lamports_in: int, state: BondingCurveState, fee_bps: int = FEE_BASIS_POINTS) -> int:
    """Tokens received for `lamports_in` after the venue fee."""
    fee = lamports_in * fee_bps // 10_000
    net_input = lamports_in - fee
    k = state.virtual_sol_reserves * state.virtual_token_reserves
    new_sol_reserves = state.virtual_sol_reserves + net_input
    new_token_reserves = k // new_sol_reserves
    return state.virtual_token_reserves - new_token_reserves


def calculate_sell_amount(tokens_in: int, state: BondingCurveState, fee_bps: int = FEE_BASIS_POINTS) -> int:
    """Lamports received for `tokens_in` after the venue fee."""
    k = state.virtual_sol_reserves * state.virtual_token_reserves
    new_token_reserves = state.virtual_token_reserves + tokens_in
    new_sol_reserves = k // new_token_reserves
    gross_sol_out = state.virtual_sol_reserves - new_sol_reserves
    fee = gross_sol_out * fee_bps // 10_000
    return gross_sol_out - fee


def price_impact_pct(amount: int, reserve: int) -> float:
    """Percentage with two implied decimals."""
    return (amount * 10_000 // reserve) / 100


def min_amount_out(quoted: int, slippage_bps: int) -> int:
    return quoted * (10_000 - slippage_bps) // 10_000


def encode_buy_data(min_tokens_out: int, max_sol_cost: int) -> bytes:
    return BUY_DISCRIMINATOR + struct.pack("<QQ", min_tokens_out, max_sol_cost)


def encode_sell_data(token_amount: int, min_sol_out: int) -> bytes:
    return SELL_DISCRIMINATOR + struct.pack("<QQ", token_amount, min_sol_out)


def get_bonding_curve_pda(mint: Pubkey) -> Pubkey:
    pda, _bump = Pubkey.find_program_address([b"bonding-curve", bytes(mint)], PUMP_FUN_PROGRAM)
    return pda


def create_ata_idempotent_instruction(payer: Pubkey, owner: Pubkey, mint: Pubkey) -> Instruction:
    """Associated-token-account CreateIdempotent (instruction 1)."""
    ata = get_associated_token_address(owner, mint)
    return Instruction(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        bytes([1]),
        [
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(ata, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=False, is_writable=False),
            AccountMeta(mint, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        ],
    )


def swap_accounts(mint: Pubkey, user: Pubkey, is_buy: bool) -> List[AccountMeta]:
    """Ordered account list for the program's buy/sell instructions."""
    bonding_curve = get_bonding_curve_pda(mint)
    accounts = [
        AccountMeta(PUMP_FUN_GLOBAL, is_signer=False, is_writable=False),
        AccountMeta(PUMP_FUN_FEE_RECIPIENT, is_signer=False, is_writable=True),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(bonding_curve, is_signer=False, is_writable=True),
        AccountMeta(get_associated_token_address(bonding_curve, mint), is_signer=False, is_writable=True),
        AccountMeta(get_associated_token_address(user, mint), is_signer=False, is_writable=True),
        AccountMeta(user, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    if is_buy:
        accounts += [
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(RENT, is_signer=False, is_writable=False),
        ]
    else:
        accounts += [
            AccountMeta(ASSOCIATED_TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
    accounts += [
        AccountMeta(PUMP_FUN_EVENT_AUTHORITY, is_signer=False, is_writable=False),
        AccountMeta(PUMP_FUN_PROGRAM, is_signer=False, is_writable=False),
    ]
    return accounts


def quote_from_state(params: SwapParams, state: BondingCurveState, dex: str = "pumpfun") -> SwapQuote:
    if state.complete:
        raise QuoteError("Token has graduated from the pump.fun bonding curve; use jupiter or raydium")

    if params.is_buy:
        output = calculate_buy_amount(params.amount, state)
        impact = price_impact_pct(params.amount, state.virtual_sol_reserves)
    else:
        output = calculate_sell_amount(params.amount, state)
        impact = price_impact_pct(params.amount, state.virtual_token_reserves)

    return SwapQuote(
        input_mint=params.input_mint,
        output_mint=params.output_mint,
        input_amount=params.amount,
        output_amount=output,
        price_impact_pct=impact,
        dex=dex,
    )


def build_swap_instructions(params: SwapParams, quote: SwapQuote) -> List[Instruction]:
    mint = Pubkey.from_string(params.token_mint)
    user = Pubkey.from_string(params.payer)
    minimum = min_amount_out(quote.output_amount, params.slippage_bps)

    instructions: List[Instruction] = []
    if params.is_buy:
        instructions.append(create_ata_idempotent_instruction(user, user, mint))
        data = encode_buy_data(min_tokens_out=minimum, max_sol_cost=params.amount)
    else:
        data = encode_sell_data(token_amount=params.amount, min_sol_out=minimum)

    instructions.append(Instruction(PUMP_FUN_PROGRAM, data, swap_accounts(mint, user, params.is_buy)))
    return instructions


def compile_unsigned(payer: Pubkey, instructions: List[Instruction], blockhash: Hash) -> VersionedTransaction:
    message = MessageV0.try_compile(payer, instructions, [], blockhash)
    num_signers = message.header.num_required_signatures
    return VersionedTransaction.populate(message, [Signature.default()] * num_signers)


class PumpFunAdapter(VenueAdapter):
    """Bonding-curve venue. State is re-read on every quote and build."""

    kind = VenueKind.PUMPFUN

    async def fetch_bonding_curve_state(self, mint: str) -> Tuple[Pubkey, BondingCurveState]:
        pda = get_bonding_curve_pda(Pubkey.from_string(mint))
        data = await self.rpc.get_account_info(pda)
        if data is None:
            raise QuoteError(f"Bonding curve for {mint} not found, token may have graduated")
        return pda, BondingCurveState.from_account_data(data)

    async def get_quote(self, params: SwapParams) -> SwapQuote:
        _pda, state = await self.fetch_bonding_curve_state(params.token_mint)
        quote = quote_from_state(params, state, self.name)
        logger.debug(
            "pumpfun_quote",
            token=params.token_mint[:8],
            buy=params.is_buy,
            amount=params.amount,
            output=quote.output_amount,
        )
        return quote

    async def build_swap_transaction(self, params: SwapParams, quote: SwapQuote) -> VersionedTransaction:
        _pda, state = await self.fetch_bonding_curve_state(params.token_mint)
        if state.complete:
            raise QuoteError("Token has graduated from the pump.fun bonding curve; use jupiter or raydium")

        instructions = build_swap_instructions(params, quote)
        blockhash = await self.rpc.get_latest_blockhash()
        return compile_unsigned(Pubkey.from_string(params.payer), instructions, blockhash)
