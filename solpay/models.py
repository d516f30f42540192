from datetime import datetime
from typing import Optional

from django.db import models
from django.utils import timezone


class PaymentIntent(models.Model):
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        COMPLETED = 'completed', 'Completed'
        FAILED = 'failed', 'Failed'
        EXPIRED = 'expired', 'Expired'

    # Solana public keys are base58, 32..44 chars.
    reference = models.CharField(max_length=64, unique=True)
    wallet = models.CharField(max_length=64, db_index=True)
    # Price in SOL, locked in when the intent is created.
    amount = models.DecimalField(max_digits=20, decimal_places=9)
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )
    # Solana signatures are base58, up to 88 chars.
    tx_signature = models.CharField(
        max_length=128, unique=True, blank=True, null=True)
    failure_reason = models.CharField(max_length=32, blank=True, default='')
    granted_until = models.DateTimeField(blank=True, null=True)
    expires_at = models.DateTimeField()
    completed_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    OPEN_STATUSES = (Status.PENDING, Status.FAILED)

    class Meta:
        ordering = ['-created_at']

    def __str__(self) -> str:
        return f'{self.reference} ({self.status})'

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or timezone.now()) > self.expires_at


class Subscription(models.Model):
    wallet = models.CharField(max_length=64, primary_key=True)
    expires_at = models.DateTimeField()
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-expires_at']

    def __str__(self) -> str:
        return f'{self.wallet} until {self.expires_at:%Y-%m-%d %H:%M}'

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at > (now or timezone.now())


class SiteSetting(models.Model):
    key = models.CharField(max_length=64, primary_key=True)
    value = models.TextField(blank=True, default='')
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['key']

    def __str__(self) -> str:
        return f'{self.key}={self.value}'
