from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # JWT endpoints (login lives in the accounts service; these serve local/dev clients)
    path('api/auth/token/', TokenObtainPairView.as_view(), name='token-obtain'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),

    # Transporter offer APIs (list, accept, decline, counter)
    path('api/transport-offers/', include('transport.urls')),

    # Farmer order dispatch APIs (assign transporters, dispatch status)
    path('api/orders/', include('orders.urls')),
]
