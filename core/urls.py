from django.contrib import admin
from django.urls import include, path

from core.views import health, home

urlpatterns = [
    path('', home, name='home'),
    path('api/health', health, name='health'),
    path('api/', include('solpay.urls')),
    path('admin/', admin.site.urls),
]
