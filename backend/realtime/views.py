"""
Internal relay endpoints used by other services to push events to live clients.

Both answer 200 with ``{"delivered": true|false}``; an offline participant is
not an error.
"""

from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .notifications import get_notification_relay
from .serializers import DriverNotificationSerializer, RiderNotificationSerializer


@api_view(['POST'])
def notify_driver(request):
    serializer = DriverNotificationSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    delivered = get_notification_relay().send_to_driver(
        data['driverId'], data['event'], data['data']
    )
    return Response({'delivered': delivered})


@api_view(['POST'])
def notify_rider(request):
    serializer = RiderNotificationSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    delivered = get_notification_relay().send_to_rider(
        data['userId'], data['event'], data['data']
    )
    return Response({'delivered': delivered})
