from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from arm_commander.config import CONNECTION_MODES, ConnectionConfig
from arm_commander.services.errors import ConnectivityTimeout, DeviceError
from arm_commander.state import ConnectionState, ConnectionStatus, ServoId, StatusSnapshot

if TYPE_CHECKING:
    from collections.abc import Callable

    from arm_commander.services.device_client import DeviceClient

TIMEOUT_MESSAGE = "Connection timeout - device not responding. Make sure it's powered on."


class ConnectionManager:
    """
    Connectivity state machine for the arm device.

    disconnected -> connecting -> connected | disconnected
    connected -> disconnected on disconnect() or when the poll failure
    threshold is reached. Nothing reconnects on its own.

    While connected and polling is enabled, a single poll task reads the
    device status every ``poll_interval_s`` and hands snapshots to
    ``on_status``. Status results are tagged with a generation so that a
    superseded probe or poll never reaches ``on_status``. When
    ``command_generations`` is given, every snapshot also carries the
    per-servo command generations sampled just before the read was issued,
    so the receiver can tell which servos were commanded meanwhile.
    """

    def __init__(
        self,
        client: DeviceClient,
        config: ConnectionConfig | None = None,
        on_status: Callable[[StatusSnapshot], None] | None = None,
        command_generations: Callable[[], dict[ServoId, int]] | None = None,
    ) -> None:
        self.client = client
        self.config = config or ConnectionConfig()
        self.on_status = on_status
        self.command_generations = command_generations
        self.state = ConnectionState()
        self.polling_enabled = False
        self.consecutive_failures = 0
        self._listeners: list[Callable[[ConnectionState], None]] = []
        self._poll_task: asyncio.Task | None = None
        self._generation = 0

    # ---- State ----

    @property
    def status(self) -> ConnectionStatus:
        return self.state.status

    @property
    def is_connected(self) -> bool:
        return self.state.status is ConnectionStatus.CONNECTED

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def add_listener(self, callback: Callable[[ConnectionState], None]) -> None:
        self._listeners.append(callback)

    def _set_state(
        self,
        status: ConnectionStatus,
        last_error: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.state.status = status
        if last_error is not None:
            self.state.last_error = last_error
        if base_url is not None:
            self.state.base_url = base_url
        if status is not ConnectionStatus.CONNECTED:
            self._stop_polling()
        for callback in list(self._listeners):
            callback(self.state)

    # ---- Target selection ----

    def select_target(self, mode: str | None = None, address: str | None = None) -> str:
        """Change the probed target; an open connection stays up until the next connect()."""
        if mode is not None:
            if mode not in CONNECTION_MODES:
                raise ValueError(f"Unknown connection mode: {mode!r}")
            self.config.mode = mode  # type: ignore[assignment]
        if address is not None and address.strip():
            self.config.device_address = address.strip()
        return self.config.base_url

    # ---- Transitions ----

    async def connect(self, mode: str | None = None, address: str | None = None) -> bool:
        """Probe the selected target. Never raises for connectivity problems."""
        url = self.select_target(mode, address)
        self._generation += 1
        generation = self._generation
        self._set_state(ConnectionStatus.CONNECTING)
        self.client.base_url = url
        logging.info("Connecting to %s", url)

        try:
            snapshot = await self._read_status(self.config.probe_timeout_s)
        except ConnectivityTimeout as e:
            if generation != self._generation:
                return False
            logging.error("Connection error: %s", e)
            self._set_state(ConnectionStatus.DISCONNECTED, last_error=TIMEOUT_MESSAGE)
            return False
        except DeviceError as e:
            if generation != self._generation:
                return False
            logging.error("Connection error: %s", e)
            self._set_state(
                ConnectionStatus.DISCONNECTED, last_error=f"Connection failed: {e}"
            )
            return False

        if generation != self._generation:
            logging.debug("Discarding probe result for superseded attempt on %s", url)
            return False
        self.consecutive_failures = 0
        self._set_state(ConnectionStatus.CONNECTED, last_error="", base_url=url)
        logging.info("Connected to %s", url)
        self._deliver(snapshot)
        self._sync_polling()
        return True

    def disconnect(self, reason: str = "") -> None:
        self._generation += 1
        if self.state.status is not ConnectionStatus.DISCONNECTED:
            logging.info("Disconnected from %s", self.state.base_url or "device")
        self._set_state(ConnectionStatus.DISCONNECTED, last_error=reason)

    async def shutdown(self) -> None:
        """Stop all periodic work and release the HTTP session."""
        self._generation += 1
        task = self._poll_task
        self._stop_polling()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._set_state(ConnectionStatus.DISCONNECTED)
        await self.client.close()

    # ---- Status reads ----

    async def sync_status(self) -> bool:
        """One-off status read outside the poll cadence."""
        if not self.is_connected:
            return False
        generation = self._generation
        try:
            snapshot = await self._read_status(self.config.poll_timeout_s)
        except DeviceError as e:
            logging.warning("Status sync failed: %s", e)
            return False
        if generation != self._generation:
            return False
        self._deliver(snapshot)
        return True

    async def _read_status(self, timeout: float) -> StatusSnapshot:
        marks = self.command_generations() if self.command_generations else None
        snapshot = await self.client.get_status(timeout=timeout)
        snapshot.command_generations = marks
        return snapshot

    def _deliver(self, snapshot: StatusSnapshot) -> None:
        if snapshot.angles is None:
            logging.debug("Status without angles; nothing to reconcile")
            return
        if self.on_status is not None:
            self.on_status(snapshot)

    # ---- Polling ----

    def set_polling_enabled(self, enabled: bool) -> None:
        self.polling_enabled = bool(enabled)
        self._sync_polling()

    def _sync_polling(self) -> None:
        if self.polling_enabled and self.is_connected:
            if not self.is_polling:
                self.consecutive_failures = 0
                self._poll_task = asyncio.create_task(self._poll_loop())
        else:
            self._stop_polling()

    def _stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _poll_loop(self) -> None:
        me = asyncio.current_task()
        while True:
            await asyncio.sleep(self.config.poll_interval_s)
            generation = self._generation
            try:
                snapshot = await self._read_status(self.config.poll_timeout_s)
            except DeviceError as e:
                if self._poll_task is not me or generation != self._generation:
                    return
                self.consecutive_failures += 1
                limit = self.config.max_poll_failures
                logging.warning(
                    "Status fetch error (%d/%s): %s",
                    self.consecutive_failures,
                    limit or "-",
                    e,
                )
                if limit and self.consecutive_failures >= limit:
                    self._poll_task = None
                    self.disconnect(f"Lost connection: {e}")
                    return
                continue
            if self._poll_task is not me or generation != self._generation:
                return
            self.consecutive_failures = 0
            self._deliver(snapshot)
