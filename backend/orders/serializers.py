from rest_framework import serializers

from .models import Order, OrderStatus


class OrderSerializer(serializers.ModelSerializer):
    """Order representation shared by the REST API and relay payloads"""
    riderId = serializers.IntegerField(source='rider_id', read_only=True)
    driverId = serializers.IntegerField(source='driver_id', read_only=True, allow_null=True)
    pickupLocation = serializers.CharField(source='pickup_location', read_only=True)
    dropoffLocation = serializers.CharField(source='dropoff_location', read_only=True)
    distanceKm = serializers.DecimalField(
        source='distance_km', max_digits=8, decimal_places=2, read_only=True
    )
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = Order
        fields = ['id', 'riderId', 'pickupLocation', 'dropoffLocation', 'price',
                  'distanceKm', 'status', 'driverId', 'createdAt', 'updatedAt']
        read_only_fields = fields


class OrderCreateSerializer(serializers.Serializer):
    """Body of POST order/"""
    riderId = serializers.IntegerField(min_value=1)
    pickupLocation = serializers.CharField(max_length=500, trim_whitespace=True)
    dropoffLocation = serializers.CharField(max_length=500, trim_whitespace=True)


class OrderAcceptSerializer(serializers.Serializer):
    """Body of POST order/<id>/accept/"""
    driverId = serializers.IntegerField(min_value=1)


class OrderStatusSerializer(serializers.Serializer):
    """Body of PATCH order/<id>/status/"""
    status = serializers.ChoiceField(choices=OrderStatus.values)


def order_payload(order: Order) -> dict:
    """Plain-dict order representation safe to put on the channel layer."""
    return dict(OrderSerializer(order).data)
