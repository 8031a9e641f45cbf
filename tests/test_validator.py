"""
Unit tests for pre-signing transaction checks.
"""

import struct
import pytest
from solders.keypair import Keypair

from conftest import unsigned_transfer_tx
from fleetswap.config import LAMPORTS_PER_SOL
from fleetswap.errors import SafetyError, UnexpectedFeePayer, SuspiciousTransfer
from fleetswap.validator import (
    MAX_DIRECT_TRANSFER_LAMPORTS,
    decode_system_transfer,
    validate_swap_transaction,
)


class TestDecodeSystemTransfer:
    """System program instruction data decoding."""

    def test_transfer(self):
        assert decode_system_transfer(struct.pack("<IQ", 2, 1234)) == 1234

    def test_other_instruction(self):
        # CreateAccount
        assert decode_system_transfer(struct.pack("<IQ", 0, 1234)) is None

    def test_truncated(self):
        assert decode_system_transfer(b"\x02\x00\x00\x00") is None


class TestValidateSwapTransaction:
    """Fee payer and direct-drain checks."""

    def setup_method(self):
        self.payer = Keypair().pubkey()
        self.other = Keypair().pubkey()

    def test_small_transfer_passes(self):
        tx = unsigned_transfer_tx(self.payer, self.payer, self.other, LAMPORTS_PER_SOL)

        validate_swap_transaction(tx, self.payer, "jupiter")

    def test_threshold_is_inclusive(self):
        tx = unsigned_transfer_tx(self.payer, self.payer, self.other, MAX_DIRECT_TRANSFER_LAMPORTS)

        validate_swap_transaction(tx, str(self.payer), "jupiter")

    def test_large_transfer_from_payer_rejected(self):
        tx = unsigned_transfer_tx(self.payer, self.payer, self.other, 11 * LAMPORTS_PER_SOL)

        with pytest.raises(SuspiciousTransfer):
            validate_swap_transaction(tx, self.payer, "jupiter")

    def test_large_transfer_into_payer_allowed(self):
        tx = unsigned_transfer_tx(self.payer, self.other, self.payer, 50 * LAMPORTS_PER_SOL)

        validate_swap_transaction(tx, self.payer, "raydium")

    def test_wrong_fee_payer_rejected(self):
        tx = unsigned_transfer_tx(self.other, self.other, self.payer, 1)

        with pytest.raises(UnexpectedFeePayer) as exc_info:
            validate_swap_transaction(tx, self.payer, "raydium")

        assert isinstance(exc_info.value, SafetyError)
        assert "raydium" in str(exc_info.value)
