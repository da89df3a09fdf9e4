"""Relay WebSocket consumer: session registration and event delivery."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional

from channels.db import database_sync_to_async

from .base import BaseConsumer
from drivers import services as driver_registry
from realtime.sessions import (
    DRIVER,
    ROLES,
    ConnectionSession,
    get_connection_router,
)

logger = logging.getLogger(__name__)

LOCATION_UPDATE = "driver:update-location"


class RelayConsumer(BaseConsumer):
    """
    WebSocket consumer shared by riders and drivers.

    Handles:
        - ``join``: register this socket as the participant's live session
        - ``leave``: drop the registration without closing the socket
        - ``driver:update-location``: heartbeat from a joined driver (marks it online)
        - ``relay.event`` channel messages: forward a named event to the client

    Disconnecting only removes the session mapping. Orders are not touched:
    a rider or driver dropping mid-ride neither pauses nor cancels the ride.
    """

    async def on_connect(self):
        self.session: Optional[ConnectionSession] = None
        await self.send_json({
            "type": "connection_established",
            "message": "Send a join message to receive ride events",
        })

    async def on_disconnect(self, close_code):
        if getattr(self, "session", None) is not None:
            self._leave()

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        if msg_type == "join":
            await self._handle_join(data)
        elif msg_type == "leave":
            await self._handle_leave()
        elif msg_type == LOCATION_UPDATE:
            await self._handle_location_update(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_join(self, data: Dict[str, Any]):
        role = str(data.get("role") or "").upper()
        participant_id = data.get("participantId")
        driver_id = data.get("driverId")

        if role not in ROLES:
            await self.send_error("join requires role RIDER or DRIVER")
            return

        # Drivers are addressed by driver id when the client knows it
        if role == DRIVER and driver_id not in (None, ""):
            participant_id = driver_id

        if participant_id in (None, ""):
            await self.send_error("join requires participantId")
            return

        # A socket re-joining under another identity gives up the old one
        if self.session is not None:
            self._leave()

        session = ConnectionSession(
            participant_id=str(participant_id),
            role=role,
            channel_name=self.channel_name,
        )
        get_connection_router().join(session)
        self.session = session

        logger.info("%s %s joined on %s", role, session.participant_id, self.channel_name)
        await self.send_success(
            "joined",
            participantId=session.participant_id,
            role=role,
        )

    async def _handle_leave(self):
        if self.session is None:
            await self.send_error("Not joined")
            return
        self._leave()
        await self.send_success("left")

    async def _handle_location_update(self, data: Dict[str, Any]):
        """
        Record a driver location ping.

        Same effect as PATCH driver/status/<id>/ with isOnline=true: the
        driver is marked online and its coordinates replaced.
        """
        if self.session is None or self.session.role != DRIVER:
            await self.send_error(f"{LOCATION_UPDATE} requires a joined DRIVER session")
            return

        driver_id = data.get("driverId")
        if driver_id not in (None, "") and str(driver_id) != self.session.participant_id:
            await self.send_error(f"{LOCATION_UPDATE} driverId does not match the joined driver")
            return

        lat = _coordinate(data.get("lat"), 90)
        lon = _coordinate(data.get("lon"), 180)
        if lat is None or lon is None:
            await self.send_error(f"{LOCATION_UPDATE} requires lat (-90..90) and lon (-180..180)")
            return

        try:
            driver_pk = int(self.session.participant_id)
        except ValueError:
            await self.send_error("Location updates need a numeric driverId in join")
            return

        await self._set_driver_location(driver_pk, lat, lon)
        logger.debug("Driver %s location ping: lat=%s, lon=%s", driver_pk, lat, lon)
        await self.send_success(
            "location_updated",
            driverId=driver_pk,
            lat=float(lat),
            lon=float(lon),
        )

    def _leave(self):
        removed = get_connection_router().leave(
            self.session.role,
            self.session.participant_id,
            channel_name=self.channel_name,
        )
        logger.info("%s %s left (mapping removed=%s)",
                    self.session.role, self.session.participant_id, removed)
        self.session = None

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _set_driver_location(self, driver_id: int, lat: Decimal, lon: Decimal):
        return driver_registry.set_online(driver_id, online=True, lat=lat, lon=lon)

    # ---------------------- Event Handlers (from channel_layer.send) ----------------------

    async def relay_event(self, event):
        """Forward a relayed ride event to the client."""
        await self.send_json({
            "type": event.get("event"),
            "data": event.get("data", {}),
        })


def _coordinate(value, limit) -> Optional[Decimal]:
    """Parse a coordinate to 6 decimal places, or None if missing or out of range."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value)).quantize(Decimal("0.000001"))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite() or abs(number) > limit:
        return None
    return number
