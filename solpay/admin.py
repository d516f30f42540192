from django.contrib import admin

from solpay.models import PaymentIntent, SiteSetting, Subscription


@admin.register(PaymentIntent)
class PaymentIntentAdmin(admin.ModelAdmin):
    list_display = ("reference", "wallet", "amount", "status", "tx_signature", "expires_at", "created_at")
    list_filter = ("status",)
    search_fields = ("reference", "wallet", "tx_signature")
    readonly_fields = ("reference", "amount", "tx_signature", "granted_until", "completed_at")


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = ("wallet", "expires_at", "updated_at")
    search_fields = ("wallet",)


@admin.register(SiteSetting)
class SiteSettingAdmin(admin.ModelAdmin):
    list_display = ("key", "value", "updated_at")
