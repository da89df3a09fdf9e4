from django.contrib import admin
from orders.models import Order


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Read-only admin panel for inspecting orders"""

    list_display = [
        "id",
        "rider_id",
        "driver_id",
        "status",
        "price",
        "distance_km",
        "created_at",
    ]

    list_filter = [
        "status",
        "created_at",
    ]

    search_fields = [
        "rider_id",
        "driver_id",
        "pickup_location",
        "dropoff_location",
    ]

    ordering = ("-created_at",)

    # Orders only change through the dispatch API
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
