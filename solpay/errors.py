from enum import Enum


class PaymentError(str, Enum):
    # input errors
    INVALID_WALLET = 'InvalidWallet'
    INVALID_REFERENCE = 'InvalidReference'
    INVALID_SIGNATURE = 'InvalidSignature'
    # state errors
    SUBSCRIPTIONS_PAUSED = 'SubscriptionsPaused'
    NOT_FOUND = 'NotFound'
    ALREADY_PROCESSED = 'AlreadyProcessed'
    INTENT_EXPIRED = 'IntentExpired'
    # verification errors
    TRANSACTION_NOT_FOUND = 'TransactionNotFound'
    TRANSACTION_FAILED = 'TransactionFailed'
    NO_TRANSFER_FOUND = 'NoTransferFound'
    INVALID_RECIPIENT = 'InvalidRecipient'
    INVALID_AMOUNT = 'InvalidAmount'
    REFERENCE_NOT_FOUND = 'ReferenceNotFound'
    # transient errors
    LEDGER_UNAVAILABLE = 'LedgerUnavailable'

    @property
    def message(self) -> str:
        return ERROR_MESSAGES[self]

    @property
    def is_transient(self) -> bool:
        return self in (PaymentError.TRANSACTION_NOT_FOUND, PaymentError.LEDGER_UNAVAILABLE)


ERROR_MESSAGES = {
    PaymentError.INVALID_WALLET: 'Invalid wallet',
    PaymentError.INVALID_REFERENCE: 'Invalid payment reference',
    PaymentError.INVALID_SIGNATURE: 'Invalid transaction signature',
    PaymentError.SUBSCRIPTIONS_PAUSED: 'Subscriptions are currently paused',
    PaymentError.NOT_FOUND: 'Payment reference not found',
    PaymentError.ALREADY_PROCESSED: 'Payment already processed',
    PaymentError.INTENT_EXPIRED: 'Payment reference expired',
    PaymentError.TRANSACTION_NOT_FOUND: 'Transaction not found',
    PaymentError.TRANSACTION_FAILED: 'Transaction failed',
    PaymentError.NO_TRANSFER_FOUND: 'No transfer found in transaction',
    PaymentError.INVALID_RECIPIENT: 'Invalid recipient',
    PaymentError.INVALID_AMOUNT: 'Invalid amount',
    PaymentError.REFERENCE_NOT_FOUND: 'Reference not found in transaction',
    PaymentError.LEDGER_UNAVAILABLE: 'Solana RPC is unavailable, try again shortly',
}


class SolpayError(Exception):
    """Base error for payment processing."""


class PaymentConfigurationError(SolpayError):
    """Raised when the service is missing configuration it cannot run without."""


class SubscriptionsPausedError(SolpayError):
    """Raised when a payment intent is requested while subscriptions are paused."""
