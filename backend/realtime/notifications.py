"""
Best-effort notification relay.

Pushes named events to a participant's live WebSocket through the channel
layer. Delivery is at-most-once: if the participant has no session the event
is dropped, nothing is queued and nothing is retried. Sending never waits for
the client to acknowledge.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from .sessions import DRIVER, RIDER, ConnectionRouter, ParticipantId, get_connection_router

logger = logging.getLogger(__name__)


# ---------------------- Event Names ----------------------

RIDE_REQUEST = "ride:request"
RIDE_CANCELLED = "ride:cancelled"
RIDE_UPDATE = "ride:update"

# Channel layer message type handled by RelayConsumer.relay_event
RELAY_MESSAGE_TYPE = "relay.event"


class NotificationRelay:
    """Sends events to participants looked up in a ConnectionRouter."""

    def __init__(self, router: Optional[ConnectionRouter] = None):
        self.router = router or get_connection_router()

    def send(self, role: str, participant_id: ParticipantId, event: str, payload: Dict[str, Any]) -> bool:
        """
        Emit ``event`` to the participant's active session.

        Returns:
            True if a session was found and the event handed to the channel layer,
            False if the participant is not connected or the hand-off failed.
        """
        session = self.router.lookup(role, participant_id)
        if session is None:
            logger.info("No live session for %s %s; dropping %s", role, participant_id, event)
            return False

        channel_layer = get_channel_layer()
        if channel_layer is None:
            logger.warning("No channel layer configured; dropping %s for %s %s",
                           event, role, participant_id)
            return False

        message = {
            "type": RELAY_MESSAGE_TYPE,
            "event": event,
            "data": payload,
        }

        try:
            async_to_sync(channel_layer.send)(session.channel_name, message)
        except Exception:
            logger.exception("Failed to relay %s to %s %s", event, role, participant_id)
            return False

        logger.debug("WS -> %s %s (%s): %s", role, participant_id, session.channel_name, event)
        return True

    def send_to_driver(self, driver_id: ParticipantId, event: str, payload: Dict[str, Any]) -> bool:
        return self.send(DRIVER, driver_id, event, payload)

    def send_to_rider(self, rider_id: ParticipantId, event: str, payload: Dict[str, Any]) -> bool:
        return self.send(RIDER, rider_id, event, payload)


def get_notification_relay() -> NotificationRelay:
    return NotificationRelay()
