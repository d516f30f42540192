import copy
import json
import unittest
from decimal import Decimal
from unittest.mock import Mock

import httpx

from solpay.ledger import (
    LedgerReaderFactory,
    LedgerUnavailableError,
    OtherInstruction,
    SolanaLedgerReader,
    SystemTransfer,
    parse_transaction,
)

SIGNATURE = '5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW'
PAYER = '9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin'
TREASURY = 'HN7cABqLq46Es1jh92dQQisAq662SmxELLLsHHe4YWrH'
REFERENCE = 'EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v'

RPC_RESULT = {
    'slot': 245123456,
    'blockTime': 1718000000,
    'meta': {'err': None, 'fee': 5000},
    'transaction': {
        'signatures': [SIGNATURE],
        'message': {
            'accountKeys': [
                {'pubkey': PAYER, 'signer': True, 'writable': True, 'source': 'transaction'},
                {'pubkey': TREASURY, 'signer': False, 'writable': True, 'source': 'transaction'},
                {'pubkey': '11111111111111111111111111111111', 'signer': False,
                 'writable': False, 'source': 'transaction'},
                {'pubkey': REFERENCE, 'signer': False, 'writable': False, 'source': 'transaction'},
            ],
            'instructions': [
                {
                    'programId': 'ComputeBudget111111111111111111111111111111',
                    'accounts': [],
                    'data': '3DdGGhkhJbjm',
                },
                {
                    'program': 'system',
                    'programId': '11111111111111111111111111111111',
                    'parsed': {
                        'type': 'transfer',
                        'info': {
                            'source': PAYER,
                            'destination': TREASURY,
                            'lamports': 500000000,
                        },
                    },
                },
            ],
        },
    },
}


class ParseTransactionTests(unittest.TestCase):
    def test_parses_json_parsed_transfer(self):
        tx = parse_transaction(SIGNATURE, RPC_RESULT)

        self.assertTrue(tx.succeeded)
        self.assertEqual(tx.account_keys, [PAYER, TREASURY, '11111111111111111111111111111111', REFERENCE])
        self.assertIsInstance(tx.instructions[0], OtherInstruction)
        self.assertEqual(tx.instructions[1], SystemTransfer(PAYER, TREASURY, 500000000))
        self.assertEqual(len(tx.transfers), 1)
        self.assertEqual(tx.transfers[0].recipient, TREASURY)
        self.assertEqual(tx.transfers[0].amount, Decimal('0.5'))

    def test_accepts_plain_string_account_keys(self):
        result = copy.deepcopy(RPC_RESULT)
        result['transaction']['message']['accountKeys'] = [PAYER, TREASURY, REFERENCE]

        tx = parse_transaction(SIGNATURE, result)

        self.assertEqual(tx.account_keys, [PAYER, TREASURY, REFERENCE])

    def test_failed_transaction(self):
        result = copy.deepcopy(RPC_RESULT)
        result['meta']['err'] = {'InstructionError': [1, {'Custom': 1}]}

        tx = parse_transaction(SIGNATURE, result)

        self.assertFalse(tx.succeeded)
        self.assertEqual(tx.error, {'InstructionError': [1, {'Custom': 1}]})

    def test_token_transfer_is_not_a_native_transfer(self):
        result = copy.deepcopy(RPC_RESULT)
        result['transaction']['message']['instructions'][1]['program'] = 'spl-token'
        result['transaction']['message']['instructions'][1]['programId'] = (
            'TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA')

        tx = parse_transaction(SIGNATURE, result)

        self.assertEqual(tx.transfers, [])

    def test_missing_result(self):
        self.assertIsNone(parse_transaction(SIGNATURE, None))


class SolanaLedgerReaderTests(unittest.TestCase):
    def _make_reader(self, client):
        return SolanaLedgerReader({'rpc_url': 'http://localhost:8899'}, client=client)

    def test_fetch_returns_parsed_transaction(self):
        response = Mock()
        response.value = object()
        response.to_json.return_value = json.dumps(
            {'jsonrpc': '2.0', 'result': RPC_RESULT, 'id': 0})
        client = Mock()
        client.get_transaction.return_value = response

        tx = self._make_reader(client).fetch_transaction(SIGNATURE)

        self.assertEqual(tx.signature, SIGNATURE)
        self.assertEqual(tx.transfers[0].amount, Decimal('0.5'))
        _, kwargs = client.get_transaction.call_args
        self.assertEqual(kwargs['encoding'], 'jsonParsed')
        self.assertEqual(kwargs['max_supported_transaction_version'], 0)

    def test_fetch_returns_none_when_not_finalized(self):
        response = Mock()
        response.value = None
        client = Mock()
        client.get_transaction.return_value = response

        self.assertIsNone(self._make_reader(client).fetch_transaction(SIGNATURE))

    def test_transport_errors_are_unavailable_not_missing(self):
        client = Mock()
        client.get_transaction.side_effect = httpx.ConnectError('connection refused')
        with self.assertRaises(LedgerUnavailableError):
            self._make_reader(client).fetch_transaction(SIGNATURE)

        client.get_transaction.side_effect = httpx.ReadTimeout('timed out')
        with self.assertRaises(LedgerUnavailableError):
            self._make_reader(client).fetch_transaction(SIGNATURE)

    def test_explorer_url(self):
        reader = SolanaLedgerReader({'cluster': 'devnet'})
        self.assertEqual(reader.network_name, 'solana-devnet')
        self.assertTrue(reader.get_explorer_url(SIGNATURE).endswith('?cluster=devnet'))


class LedgerReaderFactoryTests(unittest.TestCase):
    def test_creates_solana_readers(self):
        self.assertEqual(LedgerReaderFactory.create('solana').network_name, 'solana')
        self.assertEqual(LedgerReaderFactory.create(' Solana-Devnet ').cluster, 'devnet')

    def test_unsupported_network(self):
        with self.assertRaises(ValueError):
            LedgerReaderFactory.create('base')
