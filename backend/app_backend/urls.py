from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Order APIs (create, accept, status, rider history)
    path('api/order/', include('orders.urls')),

    # Driver APIs (registration, availability, candidates, earnings)
    path('api/driver/', include('drivers.urls')),

    # Internal relay endpoints (push an event to a connected participant)
    path('api/notify/', include('realtime.urls')),
]
