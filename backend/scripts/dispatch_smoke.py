"""End-to-end smoke run of the two-driver acceptance flow.

Prerequisites:
1. `daphne app_backend.asgi:application` (or `python manage.py runserver`) must be running.
2. The rider profile service must know RIDER_ID (see DISPATCH["RIDER_PROFILE_URL"]).
3. Install dependencies once: `pip install requests websocket-client`.

The script will:
- Put drivers 101 and 102 online via the REST API.
- Open WebSocket sessions for both drivers and for rider 7 and join them.
- Create an order and wait until both drivers receive ride:request.
- Accept with driver 101 (expect 200) and driver 102 (expect 409).
- Wait for the rider's ride:update.
"""

from __future__ import annotations

import json
import os
import queue
import threading
from typing import Dict

import requests
import websocket  # type: ignore

BASE_URL = os.environ.get("DISPATCH_BASE_URL", "http://127.0.0.1:8000")
API_ROOT = f"{BASE_URL}/api"
WS_URL = BASE_URL.replace("http", "ws", 1) + "/ws/relay/"

RIDER_ID = int(os.environ.get("DISPATCH_SMOKE_RIDER_ID", "7"))
DRIVER_IDS = (101, 102)


def _set_online(driver_id: int) -> None:
    resp = requests.patch(
        f"{API_ROOT}/driver/status/{driver_id}/",
        json={"isOnline": True, "lat": 41.311081, "lon": 69.240562},
        timeout=10,
    )
    resp.raise_for_status()


def _open_socket(join: Dict, joined_evt: threading.Event, queue_out: queue.Queue) -> websocket.WebSocketApp:
    label = f"{join['role']} {join['participantId']}"

    def on_message(ws, message):  # type: ignore[no-untyped-def]
        payload = json.loads(message)
        print(f"[WS {label}] {payload}")
        if payload.get("type") == "connection_established":
            ws.send(json.dumps(join))
        elif payload.get("type") == "joined":
            joined_evt.set()
        elif payload.get("type", "").startswith("ride:"):
            queue_out.put(payload)

    def on_error(ws, error):  # type: ignore[no-untyped-def]
        print(f"[WS {label}] Error: {error}")

    ws_app = websocket.WebSocketApp(WS_URL, on_message=on_message, on_error=on_error)
    threading.Thread(target=ws_app.run_forever, daemon=True).start()
    return ws_app


def _expect(queue_in: queue.Queue, event: str, label: str) -> Dict:
    try:
        payload = queue_in.get(timeout=10)
    except queue.Empty:
        raise TimeoutError(f"{label} did not receive {event} within 10 seconds")
    if payload["type"] != event:
        raise AssertionError(f"{label} expected {event}, got {payload['type']}")
    return payload["data"]


def main() -> None:
    for driver_id in DRIVER_IDS:
        _set_online(driver_id)
    print(f"[HTTP] Drivers {DRIVER_IDS} online")

    sockets = []
    queues: Dict[str, queue.Queue] = {}
    for role, participant_id in [("RIDER", RIDER_ID)] + [("DRIVER", d) for d in DRIVER_IDS]:
        label = f"{role} {participant_id}"
        joined_evt = threading.Event()
        queues[label] = queue.Queue()
        sockets.append(_open_socket(
            {"type": "join", "participantId": participant_id, "role": role},
            joined_evt,
            queues[label],
        ))
        if not joined_evt.wait(timeout=5):
            raise TimeoutError(f"{label} failed to join within 5 seconds")

    resp = requests.post(
        f"{API_ROOT}/order/",
        json={"riderId": RIDER_ID, "pickupLocation": "A", "dropoffLocation": "B"},
        timeout=10,
    )
    resp.raise_for_status()
    order = resp.json()
    print(f"[HTTP] Order #{order['id']} created: price={order['price']} distanceKm={order['distanceKm']}")

    for driver_id in DRIVER_IDS:
        data = _expect(queues[f"DRIVER {driver_id}"], "ride:request", f"Driver {driver_id}")
        assert data["id"] == order["id"], data

    first = requests.post(f"{API_ROOT}/order/{order['id']}/accept/", json={"driverId": 101}, timeout=10)
    second = requests.post(f"{API_ROOT}/order/{order['id']}/accept/", json={"driverId": 102}, timeout=10)
    print(f"[HTTP] Accept 101 -> {first.status_code}, accept 102 -> {second.status_code}")
    if first.status_code != 200 or second.status_code != 409:
        raise AssertionError("Expected exactly one winner (200 then 409)")

    update = _expect(queues[f"RIDER {RIDER_ID}"], "ride:update", f"Rider {RIDER_ID}")
    print(f"[RESULT] Rider received ride:update {update}")

    for ws_app in sockets:
        ws_app.close()

    print("[DONE] Dispatch smoke run completed.")


if __name__ == "__main__":
    main()
