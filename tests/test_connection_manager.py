from __future__ import annotations

import asyncio

import pytest

from arm_commander.config import ConnectionConfig
from arm_commander.services.connection_manager import TIMEOUT_MESSAGE, ConnectionManager
from arm_commander.services.errors import ConnectivityRefused, ConnectivityTimeout
from arm_commander.state import ConnectionState, ConnectionStatus, ServoId, StatusSnapshot
from tests.utils.fake_device import FakeDeviceClient
from tests.utils.waiting import wait_until


def _manager(
    client: FakeDeviceClient, config: ConnectionConfig
) -> tuple[ConnectionManager, list[StatusSnapshot], list[ConnectionStatus]]:
    snapshots: list[StatusSnapshot] = []
    transitions: list[ConnectionStatus] = []
    mgr = ConnectionManager(client, config, on_status=snapshots.append)  # type: ignore[arg-type]

    def _record(state: ConnectionState) -> None:
        transitions.append(state.status)

    mgr.add_listener(_record)
    return mgr, snapshots, transitions


@pytest.mark.unit
async def test_connect_goes_through_connecting(fake_client: FakeDeviceClient, fast_config: ConnectionConfig):
    mgr, snapshots, transitions = _manager(fake_client, fast_config)
    gate = asyncio.Event()
    original = fake_client.get_status

    async def slow_status(timeout: float = 3.0) -> StatusSnapshot:
        await gate.wait()
        return await original(timeout)

    fake_client.get_status = slow_status  # type: ignore[method-assign]
    task = asyncio.create_task(mgr.connect())
    await asyncio.sleep(0)
    assert mgr.status is ConnectionStatus.CONNECTING

    gate.set()
    assert await task is True
    assert transitions == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
    assert mgr.state.base_url == "http://fake-device"
    assert mgr.state.last_error == ""
    assert len(snapshots) == 1  # immediate sync after connecting
    await mgr.shutdown()


@pytest.mark.unit
async def test_probe_uses_probe_timeout(fake_client: FakeDeviceClient, fast_config: ConnectionConfig):
    mgr, _, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    assert fake_client.status_timeouts == [fast_config.probe_timeout_s]
    await mgr.shutdown()


@pytest.mark.unit
async def test_probe_timeout_reports_timeout_message(
    fake_client: FakeDeviceClient, fast_config: ConnectionConfig
):
    fake_client.status_error = ConnectivityTimeout(5.0, "GET /status")
    mgr, snapshots, transitions = _manager(fake_client, fast_config)
    assert await mgr.connect() is False
    assert transitions == [ConnectionStatus.CONNECTING, ConnectionStatus.DISCONNECTED]
    assert mgr.state.last_error == TIMEOUT_MESSAGE
    assert snapshots == []


@pytest.mark.unit
async def test_probe_refused_reports_failure(fake_client: FakeDeviceClient, fast_config: ConnectionConfig):
    fake_client.status_error = ConnectivityRefused("Status request failed (500)", status=500)
    mgr, _, _ = _manager(fake_client, fast_config)
    assert await mgr.connect() is False
    assert mgr.status is ConnectionStatus.DISCONNECTED
    assert mgr.state.last_error == "Connection failed: Status request failed (500)"


@pytest.mark.unit
async def test_successful_connect_clears_previous_error(
    fake_client: FakeDeviceClient, fast_config: ConnectionConfig
):
    fake_client.status_error = ConnectivityTimeout(5.0)
    mgr, _, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    assert mgr.state.last_error
    fake_client.status_error = None
    assert await mgr.connect() is True
    assert mgr.state.last_error == ""
    await mgr.shutdown()


@pytest.mark.unit
async def test_malformed_status_keeps_connection(
    fake_client: FakeDeviceClient, fast_config: ConnectionConfig
):
    fake_client.status_angles = None
    mgr, snapshots, _ = _manager(fake_client, fast_config)
    assert await mgr.connect() is True
    assert mgr.is_connected
    assert snapshots == []
    await mgr.shutdown()


@pytest.mark.unit
async def test_poll_runs_only_when_enabled(fake_client: FakeDeviceClient, fast_config: ConnectionConfig):
    mgr, snapshots, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    await asyncio.sleep(0.05)
    assert not mgr.is_polling
    assert len(snapshots) == 1

    mgr.set_polling_enabled(True)
    assert mgr.is_polling
    await wait_until(lambda: len(snapshots) >= 3)
    assert fake_client.status_timeouts[-1] == fast_config.poll_timeout_s

    mgr.set_polling_enabled(False)
    assert not mgr.is_polling
    await mgr.shutdown()


@pytest.mark.unit
async def test_poll_tolerates_transient_failures(
    fake_client: FakeDeviceClient, fast_config: ConnectionConfig
):
    mgr, snapshots, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    mgr.set_polling_enabled(True)
    fake_client.status_error = ConnectivityTimeout(0.2)
    await wait_until(lambda: mgr.consecutive_failures >= 2)
    fake_client.status_error = None
    await wait_until(lambda: mgr.consecutive_failures == 0)
    assert mgr.is_connected
    assert len(snapshots) >= 2
    await mgr.shutdown()


@pytest.mark.unit
async def test_poll_failure_threshold_disconnects(
    fake_client: FakeDeviceClient, fast_config: ConnectionConfig
):
    mgr, _, transitions = _manager(fake_client, fast_config)
    await mgr.connect()
    mgr.set_polling_enabled(True)
    fake_client.status_error = ConnectivityRefused("GET /status failed: refused")
    await wait_until(lambda: mgr.status is ConnectionStatus.DISCONNECTED)
    assert mgr.consecutive_failures == fast_config.max_poll_failures
    assert mgr.state.last_error.startswith("Lost connection")
    assert not mgr.is_polling
    assert transitions[-1] is ConnectionStatus.DISCONNECTED

    calls = fake_client.status_calls
    await asyncio.sleep(0.05)
    assert fake_client.status_calls == calls  # no orphaned poll


@pytest.mark.unit
async def test_zero_threshold_never_drops(fake_client: FakeDeviceClient, fast_config: ConnectionConfig):
    fast_config.max_poll_failures = 0
    mgr, _, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    mgr.set_polling_enabled(True)
    fake_client.status_error = ConnectivityTimeout(0.2)
    await wait_until(lambda: mgr.consecutive_failures >= 6)
    assert mgr.is_connected
    await mgr.shutdown()


@pytest.mark.unit
async def test_disconnect_stops_polling(fake_client: FakeDeviceClient, fast_config: ConnectionConfig):
    mgr, _, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    mgr.set_polling_enabled(True)
    mgr.disconnect()
    assert mgr.status is ConnectionStatus.DISCONNECTED
    assert not mgr.is_polling
    calls = fake_client.status_calls
    await asyncio.sleep(0.05)
    assert fake_client.status_calls == calls


@pytest.mark.unit
async def test_reconnect_cancels_poll_before_probe(
    fake_client: FakeDeviceClient, fast_config: ConnectionConfig
):
    mgr, _, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    mgr.set_polling_enabled(True)
    first_poll = mgr._poll_task
    assert first_poll is not None
    await mgr.connect()
    await wait_until(first_poll.done)
    assert first_poll.cancelled()
    assert mgr.is_polling and mgr._poll_task is not first_poll
    await mgr.shutdown()


@pytest.mark.unit
async def test_superseded_probe_result_is_dropped(
    fake_client: FakeDeviceClient, fast_config: ConnectionConfig
):
    mgr, snapshots, _ = _manager(fake_client, fast_config)
    gate = asyncio.Event()
    original = fake_client.get_status

    async def gated_status(timeout: float = 3.0) -> StatusSnapshot:
        await gate.wait()
        return await original(timeout)

    fake_client.get_status = gated_status  # type: ignore[method-assign]
    pending = asyncio.create_task(mgr.connect())
    await asyncio.sleep(0)
    mgr.disconnect()
    gate.set()
    assert await pending is False
    assert mgr.status is ConnectionStatus.DISCONNECTED
    assert snapshots == []


@pytest.mark.unit
async def test_select_target_keeps_connection(
    fake_client: FakeDeviceClient, fast_config: ConnectionConfig
):
    mgr, _, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    url = mgr.select_target("wifi", "10.0.0.7")
    assert url == "http://10.0.0.7"
    assert mgr.is_connected
    assert mgr.state.base_url == "http://fake-device"

    await mgr.connect()
    assert fake_client.base_url == "http://10.0.0.7"
    assert mgr.state.base_url == "http://10.0.0.7"
    await mgr.shutdown()


@pytest.mark.unit
def test_select_target_rejects_unknown_mode(fake_client: FakeDeviceClient, fast_config: ConnectionConfig):
    mgr, _, _ = _manager(fake_client, fast_config)
    with pytest.raises(ValueError):
        mgr.select_target("bluetooth")


@pytest.mark.unit
async def test_shutdown_closes_client(fake_client: FakeDeviceClient, fast_config: ConnectionConfig):
    mgr, _, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    mgr.set_polling_enabled(True)
    await mgr.shutdown()
    assert not mgr.is_polling
    assert fake_client.closed


@pytest.mark.unit
async def test_snapshot_angles_reach_callback(fake_client: FakeDeviceClient, fast_config: ConnectionConfig):
    fake_client.status_angles = {
        ServoId.BASE: 100,
        ServoId.SHOULDER: 80,
        ServoId.ELBOW: 70,
        ServoId.GRIPPER: 160,
    }
    mgr, snapshots, _ = _manager(fake_client, fast_config)
    await mgr.connect()
    assert snapshots[0].angles == fake_client.status_angles
    await mgr.shutdown()
