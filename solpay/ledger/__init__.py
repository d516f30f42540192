"""
Ledger readers: fetch finalized transactions by signature.
"""
from .base import (
    LedgerReader,
    LedgerTransaction,
    LedgerUnavailableError,
    OtherInstruction,
    SystemTransfer,
    TransferInstruction,
)
from .solana_rpc import SolanaLedgerReader, parse_transaction
from .factory import LedgerReaderFactory

__all__ = [
    'LedgerReader',
    'LedgerTransaction',
    'LedgerUnavailableError',
    'OtherInstruction',
    'SystemTransfer',
    'TransferInstruction',
    'SolanaLedgerReader',
    'parse_transaction',
    'LedgerReaderFactory',
]
