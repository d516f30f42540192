from django.urls import path

from solpay.views import CreatePaymentView, SiteSettingsView, SubscriptionStatusView, VerifyPaymentView

app_name = 'solpay'

urlpatterns = [
    path('payment/create', CreatePaymentView.as_view(), name='create'),
    path('payment/verify', VerifyPaymentView.as_view(), name='verify'),
    path('subscription/status', SubscriptionStatusView.as_view(), name='subscription-status'),
    path('settings', SiteSettingsView.as_view(), name='settings'),
]
