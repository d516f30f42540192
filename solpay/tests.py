import json
from datetime import datetime, timedelta, timezone as datetime_timezone
from decimal import Decimal
from unittest.mock import patch

from django.core.management import call_command
from django.db import transaction
from django.test import TestCase, override_settings
from django.urls import reverse
from loguru import logger

from solpay import store
from solpay.coordinator import PaymentCoordinator
from solpay.errors import PaymentConfigurationError, PaymentError
from solpay.models import PaymentIntent, Subscription
from solpay.reference import generate_reference
from solpay.test_verification import FakeLedgerReader, make_signature, make_transfer_tx
from solpay.verification import TransactionVerifier

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=datetime_timezone.utc)
HALF_SOL = 500_000_000


def frozen(at=NOW):
    return patch('django.utils.timezone.now', return_value=at)


@override_settings(
    SOLPAY_PRICE_SOL=Decimal('0.5'),
    SOLPAY_SUBSCRIPTION_DAYS=30,
    SOLPAY_INTENT_TTL_MINUTES=15,
)
class PaymentCoordinatorTests(TestCase):
    def setUp(self) -> None:
        self.treasury = generate_reference()
        self.wallet = generate_reference()
        self.reader = FakeLedgerReader()
        self.coordinator = PaymentCoordinator(TransactionVerifier(self.reader), self.treasury)

    def _create(self):
        result = self.coordinator.create_payment(self.wallet)
        self.assertTrue(result.success)
        return result

    def _pay(self, reference, lamports=HALF_SOL, recipient=None):
        signature = make_signature()
        self.reader.add(make_transfer_tx(
            signature, recipient or self.treasury, lamports, reference))
        return signature

    def test_create_payment(self):
        with frozen():
            result = self._create()

        self.assertEqual(result.amount, Decimal('0.5'))
        self.assertEqual(result.wallet, self.wallet)
        self.assertEqual(result.created_at, NOW)
        self.assertEqual(result.expires_at, NOW + timedelta(minutes=15))
        self.assertEqual(store.get_intent(result.reference).status, PaymentIntent.Status.PENDING)

    def test_create_payment_rejects_invalid_wallet(self):
        result = self.coordinator.create_payment('not-a-wallet')

        self.assertFalse(result.success)
        self.assertEqual(result.error, PaymentError.INVALID_WALLET)
        self.assertEqual(PaymentIntent.objects.count(), 0)

    def test_create_payment_while_paused(self):
        store.update_setting('is_paused', True)

        result = self.coordinator.create_payment(self.wallet)

        self.assertFalse(result.success)
        self.assertEqual(result.error, PaymentError.SUBSCRIPTIONS_PAUSED)
        self.assertEqual(PaymentIntent.objects.count(), 0)

    def test_pay_then_replay(self):
        with frozen():
            created = self._create()
            signature = self._pay(created.reference)

            first = self.coordinator.verify_payment(created.reference, signature)
            second = self.coordinator.verify_payment(created.reference, signature)

        self.assertTrue(first.success)
        self.assertEqual(first.tx_signature, signature)
        self.assertEqual(first.new_expiry, NOW + timedelta(days=30))
        self.assertFalse(second.success)
        self.assertEqual(second.error, PaymentError.ALREADY_PROCESSED)

        intent = store.get_intent(created.reference)
        self.assertEqual(intent.status, PaymentIntent.Status.COMPLETED)
        self.assertEqual(intent.tx_signature, signature)
        self.assertEqual(intent.granted_until, first.new_expiry)
        self.assertEqual(Subscription.objects.get(wallet=self.wallet).expires_at, first.new_expiry)

    def test_renewal_extends_from_current_expiry(self):
        current = NOW + timedelta(days=12)
        Subscription.objects.create(wallet=self.wallet, expires_at=current)

        with frozen():
            created = self._create()
            result = self.coordinator.verify_payment(
                created.reference, self._pay(created.reference))

        self.assertTrue(result.success)
        self.assertEqual(result.new_expiry, current + timedelta(days=30))

    def test_invalid_subscription_days_setting_never_shortens(self):
        current = NOW + timedelta(days=20)
        Subscription.objects.create(wallet=self.wallet, expires_at=current)
        store.update_setting('subscription_days', -10)

        with frozen():
            created = self._create()
            result = self.coordinator.verify_payment(
                created.reference, self._pay(created.reference))

        self.assertTrue(result.success)
        self.assertEqual(result.new_expiry, current + timedelta(days=30))

    def test_invalid_price_setting_uses_default(self):
        store.update_setting('price_sol', 'NaN')

        result = self._create()

        self.assertEqual(result.amount, Decimal('0.5'))

    def test_completion_logs_explorer_url(self):
        messages = []
        sink_id = logger.add(messages.append, format='{message}')
        self.addCleanup(logger.remove, sink_id)

        with frozen():
            created = self._create()
            signature = self._pay(created.reference)
            self.assertTrue(self.coordinator.verify_payment(created.reference, signature).success)

        self.assertTrue(any(f'/tx/{signature}' in message for message in messages))

    def test_expired_intent(self):
        with frozen():
            created = self._create()
            signature = self._pay(created.reference)

        with frozen(NOW + timedelta(minutes=20)):
            result = self.coordinator.verify_payment(created.reference, signature)

        self.assertEqual(result.error, PaymentError.INTENT_EXPIRED)
        self.assertEqual(self.reader.calls, [])
        self.assertEqual(store.get_intent(created.reference).status, PaymentIntent.Status.EXPIRED)
        self.assertFalse(Subscription.objects.filter(wallet=self.wallet).exists())

    def test_unknown_reference(self):
        result = self.coordinator.verify_payment(generate_reference(), make_signature())

        self.assertFalse(result.success)
        self.assertEqual(result.error, PaymentError.NOT_FOUND)

    def test_malformed_input_has_no_side_effects(self):
        created = self._create()

        bad_reference = self.coordinator.verify_payment('nope', make_signature())
        bad_signature = self.coordinator.verify_payment(created.reference, 'nope')

        self.assertEqual(bad_reference.error, PaymentError.INVALID_REFERENCE)
        self.assertEqual(bad_signature.error, PaymentError.INVALID_SIGNATURE)
        self.assertEqual(store.get_intent(created.reference).status, PaymentIntent.Status.PENDING)

    def test_mismatch_marks_failed_but_allows_corrected_payment(self):
        with frozen():
            created = self._create()
            wrong = self._pay(created.reference, lamports=100_000_000)
            rejected = self.coordinator.verify_payment(created.reference, wrong)

            intent = store.get_intent(created.reference)
            self.assertEqual(rejected.error, PaymentError.INVALID_AMOUNT)
            self.assertEqual(rejected.details, {'expected': '0.5', 'actual': '0.1'})
            self.assertEqual(intent.status, PaymentIntent.Status.FAILED)
            self.assertEqual(intent.failure_reason, PaymentError.INVALID_AMOUNT.value)

            accepted = self.coordinator.verify_payment(
                created.reference, self._pay(created.reference))

        self.assertTrue(accepted.success)
        self.assertEqual(store.get_intent(created.reference).status, PaymentIntent.Status.COMPLETED)

    def test_unrelated_payment_cannot_be_replayed(self):
        created = self._create()
        signature = self._pay(generate_reference())

        result = self.coordinator.verify_payment(created.reference, signature)

        self.assertEqual(result.error, PaymentError.REFERENCE_NOT_FOUND)
        self.assertFalse(Subscription.objects.filter(wallet=self.wallet).exists())

    def test_unfinalized_transaction_stays_pending(self):
        created = self._create()

        result = self.coordinator.verify_payment(created.reference, make_signature())

        self.assertEqual(result.error, PaymentError.TRANSACTION_NOT_FOUND)
        self.assertEqual(store.get_intent(created.reference).status, PaymentIntent.Status.PENDING)

    def test_ledger_outage_is_transient(self):
        created = self._create()
        self.reader.unavailable = True

        result = self.coordinator.verify_payment(created.reference, make_signature())

        self.assertEqual(result.error, PaymentError.LEDGER_UNAVAILABLE)
        self.assertEqual(store.get_intent(created.reference).status, PaymentIntent.Status.PENDING)

    def test_signature_credited_once_across_references(self):
        first = self._create()
        second = self._create()
        signature = make_signature()
        tx = make_transfer_tx(signature, self.treasury, HALF_SOL, first.reference)
        tx.account_keys.append(second.reference)
        self.reader.add(tx)

        self.assertTrue(self.coordinator.verify_payment(first.reference, signature).success)
        replay = self.coordinator.verify_payment(second.reference, signature)

        self.assertEqual(replay.error, PaymentError.ALREADY_PROCESSED)
        self.assertEqual(store.get_intent(second.reference).status, PaymentIntent.Status.PENDING)

    def test_concurrent_completion_extends_once(self):
        with frozen():
            created = self._create()
            signature = self._pay(created.reference)

            def complete_elsewhere(sig):
                # Another worker verifies the same payment while this one waits on the RPC.
                with transaction.atomic():
                    store.mark_completed(created.reference, sig)
                    expiry = store.extend_subscription(self.wallet, 30)
                    store.record_grant(created.reference, expiry)
                self.reader.on_fetch = None

            self.reader.on_fetch = complete_elsewhere
            result = self.coordinator.verify_payment(created.reference, signature)

        self.assertTrue(result.success)
        self.assertEqual(result.new_expiry, NOW + timedelta(days=30))
        self.assertEqual(
            Subscription.objects.get(wallet=self.wallet).expires_at, NOW + timedelta(days=30))

    def test_missing_treasury_is_fatal(self):
        coordinator = PaymentCoordinator(TransactionVerifier(self.reader), '')
        created = self._create()

        with self.assertRaises(PaymentConfigurationError):
            coordinator.verify_payment(created.reference, make_signature())
        self.assertEqual(self.reader.calls, [])


@override_settings(
    SOLPAY_PRICE_SOL=Decimal('0.5'),
    SOLPAY_SUBSCRIPTION_DAYS=30,
    SOLPAY_INTENT_TTL_MINUTES=15,
)
class PaymentViewTests(TestCase):
    def setUp(self) -> None:
        self.treasury = generate_reference()
        self.wallet = generate_reference()
        self.reader = FakeLedgerReader()
        coordinator = PaymentCoordinator(TransactionVerifier(self.reader), self.treasury)
        patcher = patch('solpay.views.get_payment_coordinator', return_value=coordinator)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _post(self, name, payload):
        return self.client.post(
            reverse(f'solpay:{name}'),
            data=json.dumps(payload),
            content_type='application/json',
        )

    def test_create_and_verify(self):
        created = self._post('create', {'wallet': self.wallet})
        self.assertEqual(created.status_code, 200)
        body = created.json()
        self.assertEqual(body['wallet'], self.wallet)
        self.assertEqual(Decimal(str(body['amount'])), Decimal('0.5'))

        signature = make_signature()
        self.reader.add(make_transfer_tx(signature, self.treasury, HALF_SOL, body['reference']))

        verified = self._post('verify', {'reference': body['reference'], 'txSignature': signature})

        self.assertEqual(verified.status_code, 200)
        self.assertTrue(verified.json()['success'])
        self.assertEqual(verified.json()['txSignature'], signature)
        self.assertIsNotNone(verified.json()['newExpiry'])

        status = self.client.get(reverse('solpay:subscription-status'), {'wallet': self.wallet})
        self.assertEqual(status.status_code, 200)
        self.assertTrue(status.json()['isActive'])
        self.assertEqual(status.json()['daysRemaining'], 30)

    def test_create_rejects_missing_wallet(self):
        response = self._post('create', {})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'InvalidWallet')

    def test_create_while_paused(self):
        store.update_setting('is_paused', True)
        store.update_setting('pause_message', 'Maintenance')

        response = self._post('create', {'wallet': self.wallet})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {
            'error': 'Maintenance', 'code': 'SubscriptionsPaused', 'details': None})

    def test_verify_requires_fields(self):
        response = self._post('verify', {'reference': generate_reference()})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Missing reference or signature')
        self.assertEqual(response.json()['code'], 'InvalidSignature')

    def test_verify_requires_reference(self):
        response = self._post('verify', {'txSignature': make_signature()})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'InvalidReference')

    def test_verify_unknown_reference(self):
        response = self._post(
            'verify', {'reference': generate_reference(), 'txSignature': make_signature()})

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['code'], 'NotFound')

    def test_verify_ledger_outage(self):
        created = self._post('create', {'wallet': self.wallet}).json()
        self.reader.unavailable = True

        response = self._post(
            'verify', {'reference': created['reference'], 'txSignature': make_signature()})

        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()['code'], 'LedgerUnavailable')

    def test_verify_misconfigured_treasury(self):
        created = self._post('create', {'wallet': self.wallet}).json()
        coordinator = PaymentCoordinator(TransactionVerifier(self.reader), '')

        with patch('solpay.views.get_payment_coordinator', return_value=coordinator):
            response = self._post(
                'verify', {'reference': created['reference'], 'txSignature': make_signature()})

        self.assertEqual(response.status_code, 500)

    def test_subscription_status_requires_wallet(self):
        response = self.client.get(reverse('solpay:subscription-status'))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['code'], 'InvalidWallet')

    def test_subscription_status_unknown_wallet(self):
        response = self.client.get(reverse('solpay:subscription-status'), {'wallet': self.wallet})

        self.assertEqual(response.json(), {
            'isActive': False, 'expiresAt': None, 'daysRemaining': None})

    def test_public_settings(self):
        response = self.client.get(reverse('solpay:settings'))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            'is_paused': False,
            'pause_message': '',
            'price_sol': '0.5',
            'subscription_days': 30,
        })


class ExpireIntentsCommandTests(TestCase):
    def test_command_expires_stale_intents(self):
        site = store.SiteSettings(False, '', Decimal('0.5'), 30)
        intent = store.create_intent(generate_reference(), site)
        PaymentIntent.objects.filter(pk=intent.pk).update(expires_at=NOW - timedelta(days=1))

        call_command('expire_payment_intents')

        intent.refresh_from_db()
        self.assertEqual(intent.status, PaymentIntent.Status.EXPIRED)
