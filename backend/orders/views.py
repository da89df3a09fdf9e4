from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from common.exceptions import DispatchError
from services import dispatch
from .serializers import (
    OrderSerializer,
    OrderCreateSerializer,
    OrderAcceptSerializer,
    OrderStatusSerializer,
)


def error_response(exc: DispatchError) -> Response:
    return Response(exc.as_response_data(), status=exc.status_code)


# ==================== Rider APIs ====================

@api_view(['POST'])
def create_order(request):
    """Create a PENDING order and offer it to online drivers"""
    serializer = OrderCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        order = dispatch.create_order(
            rider_id=data['riderId'],
            pickup_location=data['pickupLocation'],
            dropoff_location=data['dropoffLocation'],
        )
    except DispatchError as exc:
        return error_response(exc)

    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
def get_order(request, order_id):
    try:
        order = dispatch.get_order(order_id)
    except DispatchError as exc:
        return error_response(exc)
    return Response(OrderSerializer(order).data)


@api_view(['GET'])
def rider_orders(request, rider_id):
    """Rider's order history, newest first"""
    orders = dispatch.list_rider_orders(rider_id)
    return Response(OrderSerializer(orders, many=True).data)


# ==================== Driver APIs ====================

@api_view(['GET'])
def pending_orders(request):
    """
    Open orders, newest first.

    Polling fallback for drivers that were offline or missed a ride:request.
    """
    orders = dispatch.list_pending_orders()
    return Response(OrderSerializer(orders, many=True).data)


@api_view(['POST'])
def accept_order(request, order_id):
    """
    Accept a PENDING order.

    The first driver to land the conditional update wins; everyone else
    gets 409.
    """
    serializer = OrderAcceptSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = dispatch.accept_order(order_id, serializer.validated_data['driverId'])
    except DispatchError as exc:
        return error_response(exc)

    return Response(OrderSerializer(order).data)


@api_view(['PATCH'])
def update_order_status(request, order_id):
    serializer = OrderStatusSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        order = dispatch.update_status(order_id, serializer.validated_data['status'])
    except DispatchError as exc:
        return error_response(exc)

    return Response(OrderSerializer(order).data)
