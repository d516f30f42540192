"""
Base ledger reader interface.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

LAMPORTS_PER_SOL = Decimal(1_000_000_000)


class LedgerUnavailableError(Exception):
    """Raised when the ledger cannot be reached or does not answer in time."""


@dataclass(frozen=True)
class SystemTransfer:
    """Native SOL transfer from the System program."""
    source: str
    destination: str
    lamports: int


@dataclass(frozen=True)
class OtherInstruction:
    """Any instruction this service does not interpret."""
    program: Optional[str]
    program_id: Optional[str]


ParsedInstruction = Union[SystemTransfer, OtherInstruction]


@dataclass(frozen=True)
class TransferInstruction:
    recipient: str
    amount: Decimal


@dataclass
class LedgerTransaction:
    signature: str
    succeeded: bool
    instructions: List[ParsedInstruction] = field(default_factory=list)
    account_keys: List[str] = field(default_factory=list)
    error: Optional[Any] = None

    @property
    def transfers(self) -> List[TransferInstruction]:
        """Native transfers in instruction order, amounts in SOL."""
        return [
            TransferInstruction(
                recipient=instruction.destination,
                amount=Decimal(instruction.lamports) / LAMPORTS_PER_SOL,
            )
            for instruction in self.instructions
            if isinstance(instruction, SystemTransfer)
        ]


class LedgerReader(ABC):
    """
    Abstract base class for reading settled transactions from a chain.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the ledger reader.

        Args:
            config: Network-specific configuration (RPC URL, timeout, etc.)
        """
        self.config = config

    @property
    @abstractmethod
    def network_name(self) -> str:
        """Return the network name (e.g., 'solana', 'solana-devnet')."""
        pass

    @abstractmethod
    def fetch_transaction(self, signature: str) -> Optional[LedgerTransaction]:
        """
        Fetch a finalized transaction.

        Args:
            signature: Transaction signature

        Returns:
            The parsed transaction, or None when the ledger has no finalized
            transaction for this signature (yet).

        Raises:
            LedgerUnavailableError: transport failure or timeout.
        """
        pass

    def get_explorer_url(self, signature: str) -> str:
        return f"{self.config.get('explorer_url', '')}/tx/{signature}"
