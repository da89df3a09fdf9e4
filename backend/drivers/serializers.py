from rest_framework import serializers
from drivers.models import DriverAvailability


class DriverAvailabilitySerializer(serializers.ModelSerializer):
    """
    Driver availability record.

    Also used for the candidate list returned by driver/nearby/.
    """
    driverId = serializers.IntegerField(source="driver_id", read_only=True)
    isOnline = serializers.BooleanField(source="is_online", read_only=True)
    lat = serializers.DecimalField(
        source="latitude", max_digits=9, decimal_places=6, read_only=True, allow_null=True
    )
    lon = serializers.DecimalField(
        source="longitude", max_digits=9, decimal_places=6, read_only=True, allow_null=True
    )
    lastUpdated = serializers.DateTimeField(source="last_updated", read_only=True)

    class Meta:
        model = DriverAvailability
        fields = ["driverId", "isOnline", "lat", "lon", "lastUpdated"]


class DriverRegisterSerializer(serializers.Serializer):
    driverId = serializers.IntegerField(min_value=1)


class DriverStatusUpdateSerializer(serializers.Serializer):
    """
    Partial availability update. Omitted fields keep their stored value.
    """
    isOnline = serializers.BooleanField(required=False)
    lat = serializers.FloatField(required=False, min_value=-90, max_value=90)
    lon = serializers.FloatField(required=False, min_value=-180, max_value=180)

    def validate(self, attrs):
        if ("lat" in attrs) != ("lon" in attrs):
            raise serializers.ValidationError("lat and lon must be supplied together")
        return attrs


class DriverEarningsSerializer(serializers.Serializer):
    driverId = serializers.IntegerField()
    todayEarnings = serializers.DecimalField(max_digits=14, decimal_places=2)
    weekEarnings = serializers.DecimalField(max_digits=14, decimal_places=2)
    totalTrips = serializers.IntegerField()
