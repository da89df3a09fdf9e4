from django.db import models
from django.utils import timezone


class DriverAvailability(models.Model):
    """Online/offline state and last-known location of one driver"""

    # Driver identity is owned by the external driver-profile service
    driver_id = models.BigIntegerField(primary_key=True)

    is_online = models.BooleanField(default=False)
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    last_updated = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'driver_availability'
        ordering = ['driver_id']
        verbose_name_plural = 'driver availability'

    def __str__(self):
        state = "online" if self.is_online else "offline"
        return f"Driver {self.driver_id} - {state}"
