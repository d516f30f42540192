"""
Factory for creating ledger readers.
"""
from typing import Any, Dict, Type

from .base import LedgerReader
from .solana_rpc import SolanaLedgerReader


class LedgerReaderFactory:
    """Factory to create ledger readers based on network name."""

    _readers: Dict[str, Type[LedgerReader]] = {
        'solana': SolanaLedgerReader,
        'solana-devnet': SolanaLedgerReader,
    }

    @classmethod
    def create(cls, network: str, config: Dict[str, Any] = None) -> LedgerReader:
        """
        Create a ledger reader for the specified network.

        Args:
            network: Network name ('solana', 'solana-devnet')
            config: Optional configuration dict (RPC URL, timeout, etc.)

        Returns:
            LedgerReader instance

        Raises:
            ValueError: If network is not supported
        """
        network_lower = network.lower().strip()

        reader_class = cls._readers.get(network_lower)
        if reader_class is None:
            supported = ', '.join(cls._readers.keys())
            raise ValueError(
                f"Unsupported network: {network}. "
                f"Supported networks: {supported}"
            )

        config = dict(config or {})
        if network_lower == 'solana-devnet':
            config.setdefault('cluster', 'devnet')
        return reader_class(config)
