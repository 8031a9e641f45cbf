"""
Pre-signing safety checks for venue-built swap transactions.

Aggregator routes touch many programs, so there is no program allowlist. The
checks are limited to the fee payer identity and large direct SOL drains out
of the payer.
"""

import struct
from typing import Union
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.transaction import VersionedTransaction
import structlog

from .config import LAMPORTS_PER_SOL
from .errors import UnexpectedFeePayer, SuspiciousTransfer

logger = structlog.get_logger(__name__)

MAX_DIRECT_TRANSFER_LAMPORTS = 10 * LAMPORTS_PER_SOL
SYSTEM_TRANSFER_INDEX = 2


def decode_system_transfer(data: bytes) -> Union[int, None]:
    """Return the lamports of a system transfer instruction, or None."""
    if len(data) < 12:
        return None
    (index,) = struct.unpack_from("<I", data, 0)
    if index != SYSTEM_TRANSFER_INDEX:
        return None
    (lamports,) = struct.unpack_from("<Q", data, 4)
    return lamports


def validate_swap_transaction(
    tx: VersionedTransaction,
    expected_payer: Union[str, Pubkey],
    venue_name: str,
) -> None:
    """
    Raise a SafetyError if the unsigned transaction is unsafe to sign.

    Args:
        tx: Transaction as returned by a venue adapter
        expected_payer: The wallet that will sign and pay for it
        venue_name: Used in error messages and logs
    """
    payer = str(expected_payer)
    account_keys = list(tx.message.account_keys)

    fee_payer = str(account_keys[0]) if account_keys else None
    if fee_payer != payer:
        logger.error("unexpected_fee_payer", dex=venue_name, expected=payer[:8], actual=(fee_payer or "")[:8])
        raise UnexpectedFeePayer(
            f"{venue_name} transaction fee payer {fee_payer} does not match wallet {payer}"
        )

    for ix in tx.message.instructions:
        program_id = account_keys[ix.program_id_index]
        if program_id != SYSTEM_PROGRAM_ID:
            continue

        lamports = decode_system_transfer(bytes(ix.data))
        if lamports is None:
            continue

        accounts = bytes(ix.accounts)
        # Sources resolved through lookup tables are never the payer
        if not accounts or accounts[0] >= len(account_keys):
            continue
        source = str(account_keys[accounts[0]])

        if source == payer and lamports > MAX_DIRECT_TRANSFER_LAMPORTS:
            logger.error(
                "suspicious_transfer",
                dex=venue_name,
                lamports=lamports,
                wallet=payer[:8],
            )
            raise SuspiciousTransfer(
                f"{venue_name} transaction transfers {lamports / LAMPORTS_PER_SOL:.4f} SOL "
                f"directly out of {payer}"
            )
