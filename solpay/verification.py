"""
On-chain payment verification.

A claimed signature is accepted only when the finalized transaction
succeeded, moves the expected amount of SOL to the treasury, and carries the
intent's reference among its account keys. Checks run in a fixed order so
the caller always gets the most specific reason.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from loguru import logger

from solpay.errors import PaymentError
from solpay.ledger import LedgerReader

DEFAULT_AMOUNT_TOLERANCE = Decimal('0.001')


def format_sol(amount: Decimal) -> str:
    return format(Decimal(amount).normalize(), 'f')


@dataclass
class VerificationResult:
    """Result of transaction verification."""
    is_valid: bool
    reason: Optional[PaymentError] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def invalid(cls, reason: PaymentError, message: Optional[str] = None, **details) -> 'VerificationResult':
        return cls(
            is_valid=False,
            reason=reason,
            message=message or reason.message,
            details=details or None,
        )


class TransactionVerifier:
    def __init__(self, ledger_reader: LedgerReader, amount_tolerance: Decimal = DEFAULT_AMOUNT_TOLERANCE):
        self.ledger_reader = ledger_reader
        self.amount_tolerance = Decimal(amount_tolerance)

    def verify(
        self,
        signature: str,
        expected_reference: str,
        expected_amount: Decimal,
        expected_recipient: str,
    ) -> VerificationResult:
        """
        Verify that a transaction pays `expected_amount` SOL to
        `expected_recipient` and is tagged with `expected_reference`.

        Only the first native transfer instruction is inspected.

        Raises:
            LedgerUnavailableError: the ledger could not be read.
        """
        tx = self.ledger_reader.fetch_transaction(signature)
        if tx is None:
            return VerificationResult.invalid(PaymentError.TRANSACTION_NOT_FOUND)

        if not tx.succeeded:
            return VerificationResult.invalid(
                PaymentError.TRANSACTION_FAILED, error=tx.error)

        transfers = tx.transfers
        if not transfers:
            return VerificationResult.invalid(PaymentError.NO_TRANSFER_FOUND)
        transfer = transfers[0]

        if transfer.recipient.lower() != expected_recipient.lower():
            return VerificationResult.invalid(
                PaymentError.INVALID_RECIPIENT,
                expected=expected_recipient,
                actual=transfer.recipient,
            )

        expected_amount = Decimal(expected_amount)
        if abs(transfer.amount - expected_amount) > self.amount_tolerance:
            return VerificationResult.invalid(
                PaymentError.INVALID_AMOUNT,
                'Invalid amount: expected {}, got {}'.format(
                    format_sol(expected_amount), format_sol(transfer.amount)),
                expected=format_sol(expected_amount),
                actual=format_sol(transfer.amount),
            )

        if expected_reference not in tx.account_keys:
            return VerificationResult.invalid(PaymentError.REFERENCE_NOT_FOUND)

        logger.debug(
            'Transaction {} verified: recipient={} amount={} reference={}',
            signature, transfer.recipient, transfer.amount, expected_reference)
        return VerificationResult(
            is_valid=True,
            details={
                'recipient': transfer.recipient,
                'amount': format_sol(transfer.amount),
            },
        )
