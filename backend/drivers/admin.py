from django.contrib import admin
from drivers.models import DriverAvailability


@admin.register(DriverAvailability)
class DriverAvailabilityAdmin(admin.ModelAdmin):
    """Admin panel for driver availability"""

    list_display = [
        "driver_id",
        "is_online",
        "latitude",
        "longitude",
        "last_updated",
    ]

    list_filter = [
        "is_online",
        "last_updated",
    ]

    search_fields = [
        "driver_id",
    ]

    readonly_fields = [
        "last_updated",
    ]

    ordering = ("driver_id",)
