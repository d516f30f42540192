import os
import unittest
from decimal import Decimal
from typing import Callable, Dict, Optional

import base58

from solpay.errors import PaymentError
from solpay.ledger import LedgerReader, LedgerTransaction, LedgerUnavailableError, OtherInstruction, SystemTransfer
from solpay.ledger.solana_rpc import SYSTEM_PROGRAM_ID
from solpay.reference import generate_reference
from solpay.verification import TransactionVerifier

LAMPORTS_PER_SOL = 1_000_000_000


def make_signature() -> str:
    return base58.b58encode(os.urandom(64)).decode('ascii')


def make_transfer_tx(signature, recipient, lamports, reference=None, succeeded=True, extra_instructions=()):
    payer = generate_reference()
    account_keys = [payer, recipient, SYSTEM_PROGRAM_ID]
    if reference:
        account_keys.append(reference)
    return LedgerTransaction(
        signature=signature,
        succeeded=succeeded,
        error=None if succeeded else {'InstructionError': [0, {'Custom': 1}]},
        instructions=list(extra_instructions) + [SystemTransfer(payer, recipient, lamports)],
        account_keys=account_keys,
    )


class FakeLedgerReader(LedgerReader):
    def __init__(self, transactions: Optional[Dict[str, LedgerTransaction]] = None):
        super().__init__({})
        self.transactions = dict(transactions or {})
        self.calls = []
        self.on_fetch: Optional[Callable[[str], None]] = None
        self.unavailable = False

    @property
    def network_name(self) -> str:
        return 'fake'

    def add(self, tx: LedgerTransaction) -> None:
        self.transactions[tx.signature] = tx

    def fetch_transaction(self, signature):
        self.calls.append(signature)
        if self.unavailable:
            raise LedgerUnavailableError('rpc down')
        if self.on_fetch is not None:
            self.on_fetch(signature)
        return self.transactions.get(signature)


class TransactionVerifierTests(unittest.TestCase):
    def setUp(self) -> None:
        self.reader = FakeLedgerReader()
        self.verifier = TransactionVerifier(self.reader)
        self.treasury = generate_reference()
        self.reference = generate_reference()
        self.signature = make_signature()

    def _verify(self, amount='0.5', recipient=None):
        return self.verifier.verify(
            self.signature, self.reference, Decimal(amount), recipient or self.treasury)

    def test_valid_transfer(self):
        self.reader.add(make_transfer_tx(
            self.signature, self.treasury, LAMPORTS_PER_SOL // 2, self.reference))

        result = self._verify()

        self.assertTrue(result.is_valid)
        self.assertIsNone(result.reason)
        self.assertEqual(result.details['amount'], '0.5')

    def test_missing_transaction(self):
        result = self._verify()
        self.assertFalse(result.is_valid)
        self.assertEqual(result.reason, PaymentError.TRANSACTION_NOT_FOUND)

    def test_failed_transaction_reported_before_content_checks(self):
        self.reader.add(make_transfer_tx(
            self.signature, generate_reference(), 1, None, succeeded=False))

        result = self._verify()

        self.assertEqual(result.reason, PaymentError.TRANSACTION_FAILED)

    def test_no_native_transfer(self):
        self.reader.add(LedgerTransaction(
            signature=self.signature,
            succeeded=True,
            instructions=[OtherInstruction('spl-token', 'TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA')],
            account_keys=[self.treasury, self.reference],
        ))

        self.assertEqual(self._verify().reason, PaymentError.NO_TRANSFER_FOUND)

    def test_wrong_recipient(self):
        self.reader.add(make_transfer_tx(
            self.signature, generate_reference(), LAMPORTS_PER_SOL // 2, self.reference))

        result = self._verify()

        self.assertEqual(result.reason, PaymentError.INVALID_RECIPIENT)
        self.assertEqual(result.details['expected'], self.treasury)

    def test_recipient_comparison_ignores_case(self):
        self.reader.add(make_transfer_tx(
            self.signature, self.treasury, LAMPORTS_PER_SOL // 2, self.reference))

        self.assertTrue(self._verify(recipient=self.treasury.upper()).is_valid)

    def test_only_first_transfer_is_inspected(self):
        payer = generate_reference()
        tx = make_transfer_tx(
            self.signature,
            self.treasury,
            LAMPORTS_PER_SOL // 2,
            self.reference,
            extra_instructions=[SystemTransfer(payer, generate_reference(), 5000)],
        )
        self.reader.add(tx)

        self.assertEqual(self._verify().reason, PaymentError.INVALID_RECIPIENT)

    def test_amount_within_tolerance(self):
        self.reader.add(make_transfer_tx(
            self.signature, self.treasury, 500_500_000, self.reference))

        self.assertTrue(self._verify('0.5').is_valid)

    def test_amount_outside_tolerance(self):
        self.reader.add(make_transfer_tx(
            self.signature, self.treasury, 502_000_000, self.reference))

        result = self._verify('0.5')

        self.assertEqual(result.reason, PaymentError.INVALID_AMOUNT)
        self.assertEqual(result.details, {'expected': '0.5', 'actual': '0.502'})
        self.assertIn('expected 0.5, got 0.502', result.message)

    def test_tolerance_boundary_is_inclusive(self):
        for lamports in (501_000_000, 499_000_000):
            with self.subTest(lamports=lamports):
                self.reader.add(make_transfer_tx(
                    self.signature, self.treasury, lamports, self.reference))
                self.assertTrue(self._verify('0.5').is_valid)

    def test_just_past_tolerance_rejected(self):
        for lamports in (501_000_001, 498_999_999):
            with self.subTest(lamports=lamports):
                self.reader.add(make_transfer_tx(
                    self.signature, self.treasury, lamports, self.reference))
                self.assertEqual(self._verify('0.5').reason, PaymentError.INVALID_AMOUNT)

    def test_underpayment_rejected(self):
        self.reader.add(make_transfer_tx(
            self.signature, self.treasury, 400_000_000, self.reference))

        self.assertEqual(self._verify('0.5').reason, PaymentError.INVALID_AMOUNT)

    def test_reference_must_be_in_account_keys(self):
        self.reader.add(make_transfer_tx(
            self.signature, self.treasury, LAMPORTS_PER_SOL // 2, generate_reference()))

        self.assertEqual(self._verify().reason, PaymentError.REFERENCE_NOT_FOUND)

    def test_ledger_outage_propagates(self):
        self.reader.unavailable = True
        with self.assertRaises(LedgerUnavailableError):
            self._verify()
