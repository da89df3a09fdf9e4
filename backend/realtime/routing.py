"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.relay_consumer import RelayConsumer

websocket_urlpatterns = [
    # Rider and driver session endpoint
    # URL: ws://localhost:8000/ws/relay/
    re_path(
        r"ws/relay/$",
        RelayConsumer.as_asgi(),
        name="relay-ws"
    ),
]
