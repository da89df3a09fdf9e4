from django.urls import path
from .views import (
    DriverRegisterView,
    DriverStatusView,
    NearbyDriversView,
    DriverEarningsView,
)

urlpatterns = [
    path("register/", DriverRegisterView.as_view(), name="driver-register"),
    path("status/<int:driver_id>/", DriverStatusView.as_view(), name="driver-status"),
    path("nearby/", NearbyDriversView.as_view(), name="driver-nearby"),
    path("<int:driver_id>/earnings/", DriverEarningsView.as_view(), name="driver-earnings"),
]
