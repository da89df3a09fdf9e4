"""
Services package - Business logic layer.

This package contains the business logic that operates on Django models
but is decoupled from the HTTP/WebSocket layer.

Modules:
    - dispatch: Order creation, matching, acceptance and status transitions
    - profiles: Lookups against the external rider/driver profile services
"""
