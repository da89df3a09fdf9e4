from rest_framework import serializers


class DriverNotificationSerializer(serializers.Serializer):
    """Body of POST notify/driver/"""
    driverId = serializers.IntegerField(min_value=1)
    event = serializers.CharField(max_length=100)
    data = serializers.JSONField(required=False, default=dict)


class RiderNotificationSerializer(serializers.Serializer):
    """Body of POST notify/rider/"""
    userId = serializers.IntegerField(min_value=1)
    event = serializers.CharField(max_length=100)
    data = serializers.JSONField(required=False, default=dict)
