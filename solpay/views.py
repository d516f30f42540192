from typing import Optional, Type, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from solpay import store
from solpay.coordinator import PaymentCoordinator
from solpay.errors import PaymentConfigurationError, PaymentError
from solpay.schemas import CreatePaymentRequest, VerifyPaymentRequest

RequestModel = TypeVar('RequestModel', bound=BaseModel)

ERROR_STATUS = {
    PaymentError.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    PaymentError.LEDGER_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class PaymentRequestValidationError(Exception):
    """Raised when an incoming request body fails validation."""

    def __init__(self, message: str, fields=()):
        super().__init__(message)
        self.message = message
        self.fields = tuple(fields)


def _parse_request(request_data, model: Type[RequestModel], message: str) -> RequestModel:
    try:
        return model.model_validate(request_data)
    except PydanticValidationError as exc:
        logger.debug('pydantic validation failed: {}', exc)
        fields = {str(error['loc'][0]) for error in exc.errors() if error.get('loc')}
        raise PaymentRequestValidationError(message, sorted(fields)) from exc


def _error_response(error: PaymentError, message: Optional[str] = None, details=None) -> Response:
    return Response(
        {
            'error': message or error.message,
            'code': error.value,
            'details': details,
        },
        status=ERROR_STATUS.get(error, status.HTTP_400_BAD_REQUEST),
    )


def get_payment_coordinator() -> PaymentCoordinator:
    return PaymentCoordinator.from_settings()


class CreatePaymentView(APIView):
    authentication_classes: list = []
    permission_classes: list = []

    def post(self, request, *args, **kwargs) -> Response:
        try:
            body = _parse_request(
                request.data, CreatePaymentRequest, PaymentError.INVALID_WALLET.message)
        except PaymentRequestValidationError as exc:
            return _error_response(PaymentError.INVALID_WALLET, exc.message)

        result = get_payment_coordinator().create_payment(body.wallet)
        if not result.success:
            return _error_response(result.error, result.error_message)

        return Response(
            {
                'reference': result.reference,
                'amount': result.amount,
                'wallet': result.wallet,
                'created_at': result.created_at,
                'expires_at': result.expires_at,
            },
            status=status.HTTP_200_OK,
        )


class VerifyPaymentView(APIView):
    authentication_classes: list = []
    permission_classes: list = []

    def post(self, request, *args, **kwargs) -> Response:
        try:
            body = _parse_request(
                request.data, VerifyPaymentRequest, 'Missing reference or signature')
        except PaymentRequestValidationError as exc:
            logger.info('payment verification request rejected: {}', exc.message)
            if 'reference' in exc.fields:
                return _error_response(PaymentError.INVALID_REFERENCE, exc.message)
            return _error_response(PaymentError.INVALID_SIGNATURE, exc.message)

        try:
            result = get_payment_coordinator().verify_payment(
                body.reference, body.tx_signature)
        except PaymentConfigurationError as exc:
            logger.error('payment verification misconfiguration: {}', exc)
            return Response(
                {'error': 'Payment service misconfiguration.', 'code': None, 'details': None},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        if not result.success:
            return _error_response(result.error, result.error_message, result.details)

        return Response(
            {
                'success': True,
                'txSignature': result.tx_signature,
                'newExpiry': result.new_expiry,
            },
            status=status.HTTP_200_OK,
        )


class SubscriptionStatusView(APIView):
    authentication_classes: list = []
    permission_classes: list = []

    def get(self, request, *args, **kwargs) -> Response:
        wallet = request.query_params.get('wallet')
        if not wallet:
            return _error_response(PaymentError.INVALID_WALLET, 'Wallet parameter required')

        subscription = store.get_subscription_status(wallet)
        return Response(
            {
                'isActive': subscription.is_active,
                'expiresAt': subscription.expires_at,
                'daysRemaining': subscription.days_remaining,
            },
            status=status.HTTP_200_OK,
        )


class SiteSettingsView(APIView):
    authentication_classes: list = []
    permission_classes: list = []

    def get(self, request, *args, **kwargs) -> Response:
        return Response(store.get_site_settings().as_dict(), status=status.HTTP_200_OK)
