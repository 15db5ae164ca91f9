"""
In-memory stand-in for the arm device's HTTP API.

Serves GET /status and GET /setServo with the same contract as the device
firmware so the UI can be exercised without hardware (``localhost`` mode).
Run with: python -m arm_commander.services.mock_device
"""

from __future__ import annotations

import argparse
import logging

from aiohttp import web

from arm_commander.angles import clamp
from arm_commander.common.logging_config import configure_logging
from arm_commander.constants import MOCK_DEVICE_PORT

ANGLES_KEY = web.AppKey("angles", dict)


async def handle_status(request: web.Request) -> web.Response:
    angles = request.app[ANGLES_KEY]
    return web.json_response(
        {
            "a1": angles[1],
            "a2": angles[2],
            "a3": angles[3],
            "a4": angles[4],
            "ip": "127.0.0.1",
            "mode": "local",
        }
    )


async def handle_set_servo(request: web.Request) -> web.Response:
    servo_raw = request.query.get("servo")
    angle_raw = request.query.get("angle")
    if not servo_raw or not angle_raw:
        return web.Response(status=400, text="servo and angle required")

    try:
        servo = int(servo_raw)
        # Fractional angles truncate toward zero
        angle = int(float(angle_raw))
    except (ValueError, OverflowError):
        return web.Response(status=400, text="servo and angle must be integers")

    if servo < 1 or servo > 4:
        return web.Response(status=400, text="servo out of range")

    angles = request.app[ANGLES_KEY]
    angles[servo] = clamp(angle)
    logging.info("setServo -> servo=%d angle=%d", servo, angles[servo])
    return web.Response(text="OK")


async def handle_index(_request: web.Request) -> web.Response:
    return web.Response(text="Mock arm device running (aiohttp)")


def create_app(initial_angle: int = 0) -> web.Application:
    app = web.Application()
    app[ANGLES_KEY] = {channel: clamp(initial_angle) for channel in range(1, 5)}
    app.router.add_get("/status", handle_status)
    app.router.add_get("/setServo", handle_set_servo)
    app.router.add_get("/", handle_index)
    return app


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Mock arm device backend")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host")
    parser.add_argument("--port", type=int, default=MOCK_DEVICE_PORT, help="Bind port")
    args = parser.parse_args()

    configure_logging(logging.INFO, add_ui_handler=False)
    web.run_app(create_app(), host=args.host, port=args.port)
