from django.db import models
from django.db.models import Q


class OrderStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    ARRIVED = 'ARRIVED', 'Driver Arrived'
    IN_PROGRESS = 'IN_PROGRESS', 'In Progress'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


class Order(models.Model):
    """A single ride request and its lifecycle record."""

    # Identities are owned by the external profile services
    rider_id = models.BigIntegerField(db_index=True)
    driver_id = models.BigIntegerField(null=True, blank=True, db_index=True)

    pickup_location = models.TextField()
    dropoff_location = models.TextField()

    # Computed once at creation, never written again
    price = models.DecimalField(max_digits=12, decimal_places=2)
    distance_km = models.DecimalField(max_digits=8, decimal_places=2)

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['rider_id', '-created_at'], name='orders_rider_created_idx'),
        ]
        constraints = [
            # A driver is attached exactly when the order left PENDING through acceptance
            models.CheckConstraint(
                condition=(
                    Q(status=OrderStatus.PENDING, driver_id__isnull=True)
                    | Q(
                        status__in=[
                            OrderStatus.ACCEPTED,
                            OrderStatus.ARRIVED,
                            OrderStatus.IN_PROGRESS,
                            OrderStatus.COMPLETED,
                        ],
                        driver_id__isnull=False,
                    )
                    | Q(status=OrderStatus.CANCELLED)
                ),
                name='orders_driver_matches_status',
            ),
        ]

    def __str__(self):
        return f"Order #{self.id} - rider {self.rider_id} - {self.status}"

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)
