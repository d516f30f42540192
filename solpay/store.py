"""
Durable state for payment intents, subscriptions and site settings.

Every state transition is a conditional UPDATE, so concurrent requests
(client retries, a sweep job, several workers) settle on exactly one winner
without any in-process locking.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone
from loguru import logger

from solpay.errors import SubscriptionsPausedError
from solpay.models import PaymentIntent, SiteSetting, Subscription
from solpay.reference import generate_reference

SECONDS_PER_DAY = 24 * 60 * 60

SETTING_KEYS = ('is_paused', 'pause_message', 'price_sol', 'subscription_days')


@dataclass(frozen=True)
class SiteSettings:
    is_paused: bool
    pause_message: str
    price_sol: Decimal
    subscription_days: int

    def as_dict(self) -> dict:
        return {
            'is_paused': self.is_paused,
            'pause_message': self.pause_message,
            'price_sol': str(self.price_sol),
            'subscription_days': self.subscription_days,
        }


@dataclass(frozen=True)
class SubscriptionStatus:
    is_active: bool
    expires_at: Optional[datetime]
    days_remaining: Optional[int]


def get_site_settings() -> SiteSettings:
    """Read settings rows, falling back to configured defaults."""
    rows = dict(SiteSetting.objects.filter(
        key__in=SETTING_KEYS).values_list('key', 'value'))

    price = Decimal(settings.SOLPAY_PRICE_SOL)
    if rows.get('price_sol'):
        try:
            candidate = Decimal(rows['price_sol'])
        except InvalidOperation:
            candidate = None
        if candidate is not None and candidate.is_finite() and candidate > 0:
            price = candidate
        else:
            logger.warning('Ignoring invalid price_sol setting: {}', rows['price_sol'])

    days = settings.SOLPAY_SUBSCRIPTION_DAYS
    if rows.get('subscription_days'):
        try:
            candidate_days = int(rows['subscription_days'])
        except ValueError:
            candidate_days = 0
        if candidate_days > 0:
            days = candidate_days
        else:
            logger.warning(
                'Ignoring invalid subscription_days setting: {}', rows['subscription_days'])

    return SiteSettings(
        is_paused=rows.get('is_paused', '').lower() == 'true',
        pause_message=rows.get('pause_message', ''),
        price_sol=price,
        subscription_days=days,
    )


def update_setting(key: str, value) -> None:
    if key not in SETTING_KEYS:
        raise ValueError(f'Unknown setting: {key}')
    if isinstance(value, bool):
        value = 'true' if value else 'false'
    SiteSetting.objects.update_or_create(key=key, defaults={'value': str(value)})


def create_intent(wallet: str, site: SiteSettings) -> PaymentIntent:
    """
    Insert a pending intent priced from the given settings snapshot.

    Raises:
        SubscriptionsPausedError: subscriptions are paused; nothing is written.
    """
    if site.is_paused:
        raise SubscriptionsPausedError(site.pause_message or 'Subscriptions are paused.')

    ttl = timedelta(minutes=settings.SOLPAY_INTENT_TTL_MINUTES)
    intent = PaymentIntent(
        reference=generate_reference(),
        wallet=wallet,
        amount=site.price_sol,
        expires_at=timezone.now() + ttl,
    )
    intent.save(force_insert=True)
    logger.debug('Payment intent created: reference={} wallet={} amount={}',
                 intent.reference, wallet, intent.amount)
    return intent


def get_intent(reference: str) -> Optional[PaymentIntent]:
    return PaymentIntent.objects.filter(reference=reference).first()


def signature_in_use(tx_signature: str, exclude_reference: Optional[str] = None) -> bool:
    queryset = PaymentIntent.objects.filter(tx_signature=tx_signature)
    if exclude_reference:
        queryset = queryset.exclude(reference=exclude_reference)
    return queryset.exists()


def mark_completed(reference: str, tx_signature: str) -> bool:
    """
    Complete an open intent. Returns True only for the caller that made the
    transition; every other caller gets False.
    """
    now = timezone.now()
    try:
        with transaction.atomic():
            updated = PaymentIntent.objects.filter(
                reference=reference,
                status__in=PaymentIntent.OPEN_STATUSES,
            ).update(
                status=PaymentIntent.Status.COMPLETED,
                tx_signature=tx_signature,
                failure_reason='',
                completed_at=now,
                updated_at=now,
            )
    except IntegrityError:
        logger.info('Signature {} already credited to another intent', tx_signature)
        return False
    return updated == 1


def mark_failed(reference: str, reason: str) -> bool:
    now = timezone.now()
    updated = PaymentIntent.objects.filter(
        reference=reference,
        status__in=PaymentIntent.OPEN_STATUSES,
    ).update(
        status=PaymentIntent.Status.FAILED,
        failure_reason=reason,
        updated_at=now,
    )
    return updated == 1


def mark_expired(reference: str) -> bool:
    now = timezone.now()
    updated = PaymentIntent.objects.filter(
        reference=reference,
        status__in=PaymentIntent.OPEN_STATUSES,
    ).update(
        status=PaymentIntent.Status.EXPIRED,
        updated_at=now,
    )
    return updated == 1


def record_grant(reference: str, granted_until: datetime) -> None:
    PaymentIntent.objects.filter(reference=reference).update(
        granted_until=granted_until,
        updated_at=timezone.now(),
    )


def expire_stale_intents(now: Optional[datetime] = None) -> int:
    now = now or timezone.now()
    return PaymentIntent.objects.filter(
        status__in=PaymentIntent.OPEN_STATUSES,
        expires_at__lt=now,
    ).update(
        status=PaymentIntent.Status.EXPIRED,
        updated_at=now,
    )


def _next_expiry(current: Optional[datetime], days: int, now: datetime) -> datetime:
    base = max(now, current) if current else now
    return base + timedelta(days=days)


def extend_subscription(wallet: str, days: int) -> datetime:
    """
    Add `days` on top of max(now, current expiry) and return the new expiry.

    The stored expiry is updated with a compare-and-swap: the write only
    lands if the row still holds the value it was computed from, otherwise
    the expiry is re-read and the extension recomputed.
    """
    if days <= 0:
        raise ValueError(f'Subscription extension must be positive, got {days} days')

    while True:
        now = timezone.now()
        current = Subscription.objects.filter(
            wallet=wallet).values_list('expires_at', flat=True).first()

        if current is None:
            new_expiry = _next_expiry(None, days, now)
            try:
                with transaction.atomic():
                    Subscription.objects.create(wallet=wallet, expires_at=new_expiry)
            except IntegrityError:
                logger.debug('Subscription for {} created concurrently, retrying', wallet)
                continue
            logger.info('Subscription started for {} until {}', wallet, new_expiry)
            return new_expiry

        new_expiry = _next_expiry(current, days, now)
        updated = Subscription.objects.filter(wallet=wallet, expires_at=current).update(
            expires_at=new_expiry,
            updated_at=now,
        )
        if updated == 1:
            logger.info('Subscription for {} extended until {}', wallet, new_expiry)
            return new_expiry
        logger.debug('Subscription for {} changed concurrently, retrying', wallet)


def get_subscription_status(wallet: str) -> SubscriptionStatus:
    subscription = Subscription.objects.filter(wallet=wallet).first()
    if subscription is None:
        return SubscriptionStatus(is_active=False, expires_at=None, days_remaining=None)

    now = timezone.now()
    if not subscription.is_active(now):
        return SubscriptionStatus(
            is_active=False, expires_at=subscription.expires_at, days_remaining=0)

    remaining = (subscription.expires_at - now).total_seconds()
    return SubscriptionStatus(
        is_active=True,
        expires_at=subscription.expires_at,
        days_remaining=math.ceil(remaining / SECONDS_PER_DAY),
    )
