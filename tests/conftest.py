from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from aiohttp.test_utils import TestServer

from arm_commander.config import ConnectionConfig
from arm_commander.controller import ArmController
from arm_commander.services.mock_device import create_app
from arm_commander.state import ArmState
from tests.utils.fake_device import FakeDeviceClient

pytest_plugins = ["nicegui.testing.user_plugin"]


if TYPE_CHECKING:
    from collections.abc import AsyncIterator


@pytest.fixture
def fast_config() -> ConnectionConfig:
    """Config with short cadence so poll-driven tests finish quickly."""
    return ConnectionConfig(
        mode="localhost",
        localhost_url="http://fake-device",
        probe_timeout_s=0.5,
        poll_timeout_s=0.2,
        command_timeout_s=0.2,
        poll_interval_s=0.01,
        max_poll_failures=3,
    )


@pytest.fixture
def fake_client() -> FakeDeviceClient:
    return FakeDeviceClient()


@pytest.fixture
async def controller(
    fake_client: FakeDeviceClient, fast_config: ConnectionConfig
) -> AsyncIterator[ArmController]:
    ctrl = ArmController(client=fake_client, config=fast_config, state=ArmState())  # type: ignore[arg-type]
    try:
        yield ctrl
    finally:
        await ctrl.shutdown()


@pytest.fixture
async def live_controller(controller: ArmController) -> ArmController:
    """Connected and powered on, with the power-on commands settled."""
    assert await controller.connect()
    controller.toggle_power()
    await controller.dispatcher.wait_idle()
    return controller


@pytest.fixture
async def mock_device_server() -> AsyncIterator[TestServer]:
    """The mock device app served over real HTTP on an ephemeral port."""
    server = TestServer(create_app())
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()


@pytest.fixture
def mock_device_url(mock_device_server: TestServer) -> str:
    return f"http://{mock_device_server.host}:{mock_device_server.port}"
