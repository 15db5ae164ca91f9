from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

import aiohttp

from arm_commander.angles import clamp
from arm_commander.constants import COMMAND_TIMEOUT_S, POLL_TIMEOUT_S
from arm_commander.services.errors import (
    CommandRejected,
    ConnectivityRefused,
    ConnectivityTimeout,
    MalformedResponse,
)
from arm_commander.state import ServoId, ServoPositions, StatusSnapshot

# Status payload key -> servo
STATUS_KEYS: dict[str, ServoId] = {
    "a1": ServoId.BASE,
    "a2": ServoId.SHOULDER,
    "a3": ServoId.ELBOW,
    "a4": ServoId.GRIPPER,
}


def parse_status(body: str) -> tuple[ServoPositions, dict[str, Any]]:
    """Decode a /status body into clamped positions plus the raw payload."""
    try:
        data = json.loads(body)
    except ValueError as e:
        raise MalformedResponse(f"status body is not JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponse("status body is not an object")
    angles: ServoPositions = {}
    for key, servo in STATUS_KEYS.items():
        raw = data.get(key)
        if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
            raise MalformedResponse(f"status field {key} missing or invalid")
        try:
            angles[servo] = clamp(float(raw))
        except ValueError as e:
            raise MalformedResponse(f"status field {key} is not a number") from e
    return angles, data


class DeviceClient:
    """
    Async HTTP client for the arm device.

    Every call carries a hard deadline; expiry cancels the request and raises
    ConnectivityTimeout. The aiohttp session is created lazily on the running
    loop and must be released with close().
    """

    def __init__(self, base_url: str = "", session: aiohttp.ClientSession | None = None) -> None:
        self.base_url = base_url
        self._session = session
        self._owns_session = session is None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None)
            )
            self._owns_session = True
        return self._session

    def _url(self, path: str) -> str:
        if not self.base_url:
            raise ConnectivityRefused("No device URL selected")
        return f"{self.base_url.rstrip('/')}{path}"

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> tuple[int, str]:
        session = self._ensure_session()
        async with session.get(self._url(path), params=params) as resp:
            # Undecodable bytes surface as a malformed payload, not a crash
            body = (await resp.read()).decode("utf-8", errors="replace")
            return resp.status, body

    async def _request(
        self, path: str, timeout: float, params: dict[str, Any] | None = None
    ) -> tuple[int, str]:
        try:
            return await asyncio.wait_for(self._get(path, params), timeout)
        except asyncio.TimeoutError as e:
            raise ConnectivityTimeout(timeout, f"GET {path}") from e
        except aiohttp.ClientError as e:
            raise ConnectivityRefused(f"GET {path} failed: {e}") from e

    async def get_status(self, timeout: float = POLL_TIMEOUT_S) -> StatusSnapshot:
        status, body = await self._request("/status", timeout)
        if status != 200:
            raise ConnectivityRefused(f"Status request failed ({status})", status=status)
        now = time.time()
        try:
            angles, data = parse_status(body)
        except MalformedResponse as e:
            # Reachable device, nothing to reconcile
            logging.warning("Ignoring malformed status from %s: %s", self.base_url, e)
            return StatusSnapshot(angles=None, timestamp=now)
        return StatusSnapshot(
            angles=angles,
            ip=str(data.get("ip", "")),
            mode=str(data.get("mode", "")),
            timestamp=now,
        )

    async def set_servo_angle(
        self, channel: int, angle: float, timeout: float = COMMAND_TIMEOUT_S
    ) -> str:
        params = {"servo": int(channel), "angle": clamp(angle)}
        status, body = await self._request("/setServo", timeout, params=params)
        if status != 200:
            raise CommandRejected(status, body.strip())
        return body.strip()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
