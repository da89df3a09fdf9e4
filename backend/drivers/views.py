from decimal import Decimal

from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response

from common.exceptions import DispatchError
from drivers.serializers import (
    DriverAvailabilitySerializer,
    DriverEarningsSerializer,
    DriverRegisterSerializer,
    DriverStatusUpdateSerializer,
)

from drivers import services


def _coordinate(value):
    # Stored with 6 decimal places
    if value is None:
        return None
    return Decimal(str(round(value, 6)))


class DriverRegisterView(APIView):
    """Provision the availability record once the driver profile exists."""

    def post(self, request):
        serializer = DriverRegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            availability = services.register_driver(serializer.validated_data["driverId"])
        except DispatchError as exc:
            return Response(exc.as_response_data(), status=exc.status_code)

        return Response(
            DriverAvailabilitySerializer(availability).data,
            status=status.HTTP_201_CREATED,
        )


#    HTTP fallback for the online toggle and location pings.
class DriverStatusView(APIView):

    def get(self, request, driver_id):
        try:
            availability = services.get_availability(driver_id)
        except DispatchError as exc:
            return Response(exc.as_response_data(), status=exc.status_code)

        return Response(DriverAvailabilitySerializer(availability).data)

    def patch(self, request, driver_id):
        serializer = DriverStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            availability = services.set_online(
                driver_id,
                online=data.get("isOnline"),
                lat=_coordinate(data.get("lat")),
                lon=_coordinate(data.get("lon")),
            )
        except DispatchError as exc:
            return Response(exc.as_response_data(), status=exc.status_code)

        return Response({
            "message": "Status updated",
            **DriverAvailabilitySerializer(availability).data,
        })


#    Internal: every online driver, unranked.
class NearbyDriversView(APIView):

    def get(self, request):
        drivers = services.list_online()
        return Response(DriverAvailabilitySerializer(drivers, many=True).data)


class DriverEarningsView(APIView):

    def get(self, request, driver_id):
        earnings = services.driver_earnings(driver_id)
        return Response(DriverEarningsSerializer(earnings).data)
