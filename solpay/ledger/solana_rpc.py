"""
Solana ledger reader.

Reads transactions through the JSON-RPC `getTransaction` method with
`jsonParsed` encoding and `finalized` commitment, so only settled
transactions are ever reported. The parsed payload is reduced to the small
set of facts payment verification needs.
"""
import json
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Finalized
from solana.rpc.core import RPCException
from solders.signature import Signature

from .base import (
    LedgerReader,
    LedgerTransaction,
    LedgerUnavailableError,
    OtherInstruction,
    ParsedInstruction,
    SystemTransfer,
)

SYSTEM_PROGRAM_ID = '11111111111111111111111111111111'


def _parse_instruction(raw: Dict[str, Any]) -> ParsedInstruction:
    program = raw.get('program')
    program_id = raw.get('programId')
    parsed = raw.get('parsed')
    is_system = program == 'system' or program_id == SYSTEM_PROGRAM_ID
    if is_system and isinstance(parsed, dict) and parsed.get('type') == 'transfer':
        info = parsed.get('info') or {}
        try:
            return SystemTransfer(
                source=str(info.get('source', '')),
                destination=str(info.get('destination', '')),
                lamports=int(info.get('lamports', 0)),
            )
        except (TypeError, ValueError):
            logger.warning('Unreadable system transfer instruction: {}', info)
    return OtherInstruction(program=program, program_id=program_id)


def _parse_account_keys(raw_keys: List[Any]) -> List[str]:
    keys = []
    for key in raw_keys:
        if isinstance(key, str):
            keys.append(key)
        elif isinstance(key, dict) and key.get('pubkey'):
            keys.append(str(key['pubkey']))
    return keys


def parse_transaction(signature: str, result: Optional[Dict[str, Any]]) -> Optional[LedgerTransaction]:
    """
    Build a LedgerTransaction from a `getTransaction` result.

    Accepts both `accountKeys` shapes returned by RPC nodes: plain strings
    and `{pubkey, signer, writable}` objects.
    """
    if not result:
        return None

    meta = result.get('meta') or {}
    message = (result.get('transaction') or {}).get('message') or {}

    return LedgerTransaction(
        signature=signature,
        succeeded=meta.get('err') is None,
        error=meta.get('err'),
        instructions=[
            _parse_instruction(ix)
            for ix in message.get('instructions') or []
            if isinstance(ix, dict)
        ],
        account_keys=_parse_account_keys(message.get('accountKeys') or []),
    )


class SolanaLedgerReader(LedgerReader):
    """
    Reader for Solana mainnet/devnet through a JSON-RPC node.
    """

    DEFAULT_RPC_URLS = {
        'mainnet-beta': 'https://api.mainnet-beta.solana.com',
        'devnet': 'https://api.devnet.solana.com',
    }

    def __init__(self, config: Dict[str, Any], client: Optional[Client] = None):
        super().__init__(config)
        self._client = client

    @property
    def network_name(self) -> str:
        return 'solana-devnet' if self.cluster == 'devnet' else 'solana'

    @property
    def cluster(self) -> str:
        return self.config.get('cluster', 'mainnet-beta')

    @property
    def client(self) -> Client:
        if self._client is None:
            rpc_url = self.config.get('rpc_url') or self.DEFAULT_RPC_URLS[self.cluster]
            self._client = Client(
                rpc_url,
                timeout=self.config.get('timeout_seconds', 10),
            )
        return self._client

    def fetch_transaction(self, signature: str) -> Optional[LedgerTransaction]:
        try:
            response = self.client.get_transaction(
                Signature.from_string(signature),
                encoding='jsonParsed',
                commitment=Finalized,
                max_supported_transaction_version=0,
            )
        except (SolanaRpcException, RPCException, httpx.HTTPError) as exc:
            logger.error('Solana RPC getTransaction failed for {}: {}', signature, exc)
            raise LedgerUnavailableError(str(exc)) from exc

        if response.value is None:
            logger.debug('Solana transaction {} not found or not finalized', signature)
            return None

        result = json.loads(response.to_json()).get('result')
        return parse_transaction(signature, result)

    def get_explorer_url(self, signature: str) -> str:
        """Get Solscan explorer URL."""
        if self.cluster == 'devnet':
            return f'https://solscan.io/tx/{signature}?cluster=devnet'
        return f'https://solscan.io/tx/{signature}'
