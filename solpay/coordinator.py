"""
Payment flow: create an intent, verify the client's transaction, extend the
subscription exactly once per verified payment.

All outcomes are returned as result values carrying a `PaymentError`; only
configuration problems raise.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from loguru import logger

from solpay import store
from solpay.errors import PaymentConfigurationError, PaymentError, SubscriptionsPausedError
from solpay.ledger import LedgerReader, LedgerReaderFactory, LedgerUnavailableError
from solpay.models import PaymentIntent
from solpay.reference import is_valid_solana_address, is_valid_transaction_signature
from solpay.verification import TransactionVerifier


@dataclass
class CreatePaymentResult:
    success: bool
    reference: Optional[str] = None
    amount: Optional[Decimal] = None
    wallet: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    error: Optional[PaymentError] = None
    error_message: Optional[str] = None


@dataclass
class VerifyPaymentResult:
    success: bool
    tx_signature: Optional[str] = None
    new_expiry: Optional[datetime] = None
    error: Optional[PaymentError] = None
    error_message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    @classmethod
    def failure(cls, error: PaymentError, message: Optional[str] = None,
                details: Optional[Dict[str, Any]] = None) -> 'VerifyPaymentResult':
        return cls(success=False, error=error,
                   error_message=message or error.message, details=details)


def get_ledger_reader() -> LedgerReader:
    network = settings.SOLPAY_NETWORK
    return LedgerReaderFactory.create(network, {
        'rpc_url': settings.SOLPAY_RPC_URL,
        'timeout_seconds': settings.SOLPAY_RPC_TIMEOUT_SECONDS,
    })


class PaymentCoordinator:
    def __init__(self, verifier: TransactionVerifier, treasury_wallet: str):
        self.verifier = verifier
        self.treasury_wallet = treasury_wallet

    @classmethod
    def from_settings(cls, ledger_reader: Optional[LedgerReader] = None) -> 'PaymentCoordinator':
        verifier = TransactionVerifier(
            ledger_reader or get_ledger_reader(),
            amount_tolerance=settings.SOLPAY_AMOUNT_TOLERANCE_SOL,
        )
        return cls(verifier, settings.SOLPAY_TREASURY_WALLET)

    def create_payment(self, wallet: str) -> CreatePaymentResult:
        if not is_valid_solana_address(wallet):
            return CreatePaymentResult(
                success=False,
                error=PaymentError.INVALID_WALLET,
                error_message=PaymentError.INVALID_WALLET.message,
            )

        site = store.get_site_settings()
        try:
            intent = store.create_intent(wallet, site)
        except SubscriptionsPausedError:
            logger.info('Payment intent refused for {}: subscriptions paused', wallet)
            return CreatePaymentResult(
                success=False,
                error=PaymentError.SUBSCRIPTIONS_PAUSED,
                error_message=site.pause_message or PaymentError.SUBSCRIPTIONS_PAUSED.message,
            )

        return CreatePaymentResult(
            success=True,
            reference=intent.reference,
            amount=intent.amount,
            wallet=intent.wallet,
            created_at=intent.created_at,
            expires_at=intent.expires_at,
        )

    def verify_payment(self, reference: str, tx_signature: str) -> VerifyPaymentResult:
        """
        Verify `tx_signature` against the intent identified by `reference`.

        Raises:
            PaymentConfigurationError: no treasury wallet is configured.
        """
        if not is_valid_solana_address(reference):
            return VerifyPaymentResult.failure(PaymentError.INVALID_REFERENCE)
        if not is_valid_transaction_signature(tx_signature):
            return VerifyPaymentResult.failure(PaymentError.INVALID_SIGNATURE)

        intent = store.get_intent(reference)
        if intent is None:
            return VerifyPaymentResult.failure(PaymentError.NOT_FOUND)

        if intent.status == PaymentIntent.Status.COMPLETED:
            return VerifyPaymentResult.failure(PaymentError.ALREADY_PROCESSED)

        if intent.status == PaymentIntent.Status.EXPIRED or intent.is_expired():
            store.mark_expired(reference)
            logger.info('Payment reference {} expired at {}', reference, intent.expires_at)
            return VerifyPaymentResult.failure(PaymentError.INTENT_EXPIRED)

        if store.signature_in_use(tx_signature, exclude_reference=reference):
            logger.info('Signature {} replayed against reference {}', tx_signature, reference)
            return VerifyPaymentResult.failure(PaymentError.ALREADY_PROCESSED)

        if not self.treasury_wallet:
            raise PaymentConfigurationError('Treasury wallet not configured.')

        try:
            verification = self.verifier.verify(
                tx_signature, reference, intent.amount, self.treasury_wallet)
        except LedgerUnavailableError as exc:
            logger.error('Ledger unavailable while verifying {}: {}', reference, exc)
            return VerifyPaymentResult.failure(PaymentError.LEDGER_UNAVAILABLE)

        if not verification.is_valid:
            if not verification.reason.is_transient:
                store.mark_failed(reference, verification.reason.value)
            logger.info('Payment {} rejected for tx {}: {}',
                        reference, tx_signature, verification.message)
            return VerifyPaymentResult.failure(
                verification.reason, verification.message, verification.details)

        site = store.get_site_settings()
        with transaction.atomic():
            won = store.mark_completed(reference, tx_signature)
            if won:
                new_expiry = store.extend_subscription(intent.wallet, site.subscription_days)
                store.record_grant(reference, new_expiry)

        if not won:
            return self._resolve_lost_race(reference, tx_signature)

        reader = self.verifier.ledger_reader
        logger.info('Payment {} completed on {} ({}); {} subscribed until {}',
                    reference, reader.network_name, reader.get_explorer_url(tx_signature),
                    intent.wallet, new_expiry)
        return VerifyPaymentResult(
            success=True, tx_signature=tx_signature, new_expiry=new_expiry)

    def _resolve_lost_race(self, reference: str, tx_signature: str) -> VerifyPaymentResult:
        intent = store.get_intent(reference)
        if (
            intent is not None
            and intent.status == PaymentIntent.Status.COMPLETED
            and intent.tx_signature == tx_signature
        ):
            logger.debug('Payment {} was completed concurrently with the same tx', reference)
            return VerifyPaymentResult(
                success=True, tx_signature=tx_signature, new_expiry=intent.granted_until)
        return VerifyPaymentResult.failure(PaymentError.ALREADY_PROCESSED)

    def get_subscription_status(self, wallet: str) -> store.SubscriptionStatus:
        return store.get_subscription_status(wallet)
