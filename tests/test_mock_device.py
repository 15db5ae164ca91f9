from __future__ import annotations

import aiohttp
import pytest


async def _get(url: str, params: dict | None = None) -> tuple[int, str]:
    async with aiohttp.ClientSession() as session:
        async with session.get(url, params=params) as resp:
            return resp.status, await resp.text()


@pytest.mark.integration
async def test_status_payload_shape(mock_device_url: str):
    async with aiohttp.ClientSession() as session:
        async with session.get(f"{mock_device_url}/status") as resp:
            assert resp.status == 200
            data = await resp.json()
    assert data == {"a1": 0, "a2": 0, "a3": 0, "a4": 0, "ip": "127.0.0.1", "mode": "local"}


@pytest.mark.integration
async def test_set_servo_updates_status(mock_device_url: str):
    status, body = await _get(f"{mock_device_url}/setServo", {"servo": 3, "angle": 120})
    assert (status, body) == (200, "OK")
    status, body = await _get(f"{mock_device_url}/setServo", {"servo": 1, "angle": 999})
    assert status == 200

    async with aiohttp.ClientSession() as session:
        async with session.get(f"{mock_device_url}/status") as resp:
            data = await resp.json()
    assert data["a3"] == 120
    assert data["a1"] == 180


@pytest.mark.integration
@pytest.mark.parametrize(
    "params, reason",
    [
        ({"servo": 1}, "servo and angle required"),
        ({"angle": 10}, "servo and angle required"),
        ({"servo": "one", "angle": 10}, "servo and angle must be integers"),
        ({"servo": 0, "angle": 10}, "servo out of range"),
        ({"servo": 5, "angle": 10}, "servo out of range"),
    ],
)
async def test_set_servo_validation(mock_device_url: str, params: dict, reason: str):
    status, body = await _get(f"{mock_device_url}/setServo", params)
    assert status == 400
    assert body == reason


@pytest.mark.integration
async def test_index_banner(mock_device_url: str):
    status, body = await _get(f"{mock_device_url}/")
    assert status == 200
    assert "Mock arm device" in body


@pytest.mark.integration
async def test_set_servo_truncates_fractional_angle(mock_device_url: str):
    status, body = await _get(f"{mock_device_url}/setServo", {"servo": 2, "angle": "12.5"})
    assert (status, body) == (200, "OK")
    status, body = await _get(f"{mock_device_url}/setServo", {"servo": 2, "angle": "inf"})
    assert status == 400

    async with aiohttp.ClientSession() as session:
        async with session.get(f"{mock_device_url}/status") as resp:
            data = await resp.json()
    assert data["a2"] == 12
