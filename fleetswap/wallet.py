"""
Wallet registry and key custody for the managed fleet.
Loads base58 secret keys from a JSON wallets file; read-only at runtime.

File format:

    {"wallets": [
        {"id": "main", "label": "Main", "secret_key": "<base58>", "is_main": true},
        {"id": "w1", "label": "Sniper 1", "secret_key": "<base58>"}
    ]}
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
import base58
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction
import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class WalletRecord:
    id: str
    public_key: str
    label: str
    is_main: bool = False


def keypair_from_base58(secret: str) -> Keypair:
    """Decode a base58 secret: 64-byte keypair or 32-byte seed."""
    private_key_bytes = base58.b58decode(secret)

    # Solana keypairs are 64 bytes (32 byte private + 32 byte public)
    if len(private_key_bytes) == 64:
        return Keypair.from_bytes(private_key_bytes)
    if len(private_key_bytes) == 32:
        return Keypair.from_seed(private_key_bytes)
    raise ValueError(f"Invalid private key length: {len(private_key_bytes)}")


def sign_versioned_transaction(transaction: VersionedTransaction, keypair: Keypair) -> VersionedTransaction:
    """Sign a versioned transaction whose only required signer is the keypair."""
    return VersionedTransaction(transaction.message, [keypair])


class WalletRegistry:
    """In-memory fleet of signing keys, keyed by wallet id."""

    def __init__(self):
        self._records: Dict[str, WalletRecord] = {}
        self._keys: Dict[str, Keypair] = {}

    def add(self, wallet_id: str, keypair: Keypair, label: str = "", is_main: bool = False) -> WalletRecord:
        if wallet_id in self._records:
            raise ValueError(f"Duplicate wallet id: {wallet_id}")
        record = WalletRecord(
            id=wallet_id,
            public_key=str(keypair.pubkey()),
            label=label or wallet_id,
            is_main=is_main,
        )
        self._records[wallet_id] = record
        self._keys[wallet_id] = keypair
        return record

    def get_signing_key(self, wallet_id: str) -> Keypair:
        """Raises KeyError for unknown ids."""
        try:
            return self._keys[wallet_id]
        except KeyError:
            raise KeyError(f"Wallet {wallet_id} not found") from None

    def get(self, wallet_id: str) -> Optional[WalletRecord]:
        return self._records.get(wallet_id)

    def list_wallets(self) -> List[WalletRecord]:
        """All wallets, main wallet first."""
        return sorted(self._records.values(), key=lambda r: not r.is_main)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, wallet_id: str) -> bool:
        return wallet_id in self._records

    @classmethod
    def from_file(cls, path: str) -> "WalletRegistry":
        registry = cls()
        file_path = Path(path)
        if not file_path.exists():
            logger.warning("wallets_file_missing", path=str(file_path))
            return registry

        data = json.loads(file_path.read_text())
        entries = data.get("wallets", []) if isinstance(data, dict) else data

        for entry in entries:
            try:
                keypair = keypair_from_base58(entry["secret_key"])
            except (KeyError, ValueError) as e:
                logger.error("wallet_load_failed", wallet_id=entry.get("id"), error=str(e))
                raise ValueError(f"Failed to load wallet {entry.get('id')}: {e}") from e
            registry.add(
                entry["id"],
                keypair,
                label=entry.get("label", ""),
                is_main=bool(entry.get("is_main", False)),
            )

        logger.info("wallets_loaded", count=len(registry), path=str(file_path))
        return registry


def create_wallet_registry(wallets_file: str) -> WalletRegistry:
    """Factory function to load the wallet fleet."""
    return WalletRegistry.from_file(wallets_file)
