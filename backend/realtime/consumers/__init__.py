"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .relay_consumer import RelayConsumer

__all__ = [
    "BaseConsumer",
    "RelayConsumer",
]
