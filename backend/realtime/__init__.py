"""
Realtime app for WebSocket session tracking and best-effort ride notifications.

Key Components:
    - sessions.py: ConnectionRouter interface and the in-memory participant -> session map
    - notifications.py: NotificationRelay (at-most-once event delivery)
    - consumers/: RelayConsumer handling join/leave and forwarding events
    - views.py: internal notify/driver and notify/rider endpoints

Usage:
    from realtime.notifications import get_notification_relay, RIDE_UPDATE
    from realtime.sessions import get_connection_router, ConnectionSession
"""
