from __future__ import annotations

import asyncio
import logging

from arm_commander.angles import apply_delta, clamp
from arm_commander.config import ConnectionConfig
from arm_commander.constants import NEUTRAL_ANGLE_DEG
from arm_commander.input_mapper import Direction, InputMapper, MapResult, normalize_joystick
from arm_commander.services.connection_manager import ConnectionManager
from arm_commander.services.device_client import DeviceClient
from arm_commander.services.dispatcher import CommandDispatcher
from arm_commander.state import (
    ArmState,
    CommandOutcome,
    ConnectionState,
    ConnectionStatus,
    ServoId,
    ServoPositions,
    StatusSnapshot,
    neutral_positions,
)


class ArmController:
    """
    Orchestrates input mapping, command dispatch and status reconciliation.

    The presentation layer only talks to this class: it reads positions and
    connection state, and calls the action methods. Action methods return
    True when the input was applied and False when it was blocked (power off
    or not connected).
    """

    def __init__(
        self,
        client: DeviceClient | None = None,
        config: ConnectionConfig | None = None,
        state: ArmState | None = None,
    ) -> None:
        self.config = config or ConnectionConfig()
        self.client = client or DeviceClient()
        self.state = state or ArmState()
        self.mapper = InputMapper()
        self.dispatcher = CommandDispatcher(
            self.client,
            timeout=self.config.command_timeout_s,
            on_outcome=self._on_command_outcome,
        )
        self.connection = ConnectionManager(
            self.client,
            self.config,
            on_status=self._reconcile,
            command_generations=self.dispatcher.generations,
        )
        self.connection.add_listener(self._on_connection_change)
        self._positions: ServoPositions = neutral_positions()
        self._power = False
        self._resync_task: asyncio.Task | None = None
        self.state.set_positions(self._positions)
        self.state.base_url = self.config.base_url

    # ---- Read accessors ----

    @property
    def positions(self) -> ServoPositions:
        return dict(self._positions)

    @property
    def power(self) -> bool:
        return self._power

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.connection.status

    @property
    def last_error(self) -> str:
        return self.connection.state.last_error

    @property
    def base_url(self) -> str:
        return self.connection.state.base_url

    @property
    def active_direction(self) -> Direction | None:
        return self.mapper.active_direction

    @property
    def joystick(self) -> tuple[float, float]:
        return self.mapper.joystick

    @property
    def last_outcomes(self) -> dict[ServoId, CommandOutcome]:
        return dict(self.dispatcher.last_outcomes)

    @property
    def can_command(self) -> bool:
        return self._power and self.connection.is_connected

    # ---- Power ----

    def toggle_power(self) -> bool:
        """Flip power and return the new power state."""
        self._power = not self._power
        self.state.power = self._power
        if self._power:
            logging.info("Power ON")
            self._positions = neutral_positions()
            self.state.set_positions(self._positions)
            self.connection.set_polling_enabled(True)
            for servo in ServoId:
                self._dispatch(servo, NEUTRAL_ANGLE_DEG)
        else:
            logging.info("Power OFF")
            self.connection.set_polling_enabled(False)
            self.dispatcher.cancel_all()
            self.mapper.clear()
            self._sync_input_display()
        return self._power

    # ---- Input entry points ----

    def press_direction(self, direction: Direction | str) -> bool:
        return self._apply(self.mapper.press(direction, self._input_enabled()))

    def release_direction(self, direction: Direction | str) -> bool:
        self.mapper.release(direction)
        self._sync_input_display()
        return True

    def move_joystick(self, x: float, y: float) -> bool:
        return self._apply(self.mapper.joystick_move(x, y, self._input_enabled()))

    def move_joystick_pointer(self, dx: float, dy: float, radius: float) -> bool:
        """
        Joystick update from a pointer offset relative to the control's center,
        in screen axes. Entry point for front ends without a normalizing
        joystick widget; the NiceGUI page calls move_joystick().
        """
        x, y = normalize_joystick(dx, dy, radius)
        return self.move_joystick(x, y)

    def release_joystick(self) -> bool:
        self.mapper.joystick_release()
        self._sync_input_display()
        return True

    def reset(self) -> bool:
        return self._apply(self.mapper.reset(self._input_enabled()))

    def open_gripper(self) -> bool:
        return self._apply(self.mapper.gripper_open(self._input_enabled()))

    def close_gripper(self) -> bool:
        return self._apply(self.mapper.gripper_close(self._input_enabled()))

    # ---- Connection entry points ----

    def select_target(self, mode: str | None = None, address: str | None = None) -> str:
        url = self.connection.select_target(mode, address)
        self.state.base_url = url
        return url

    async def connect(self, mode: str | None = None, address: str | None = None) -> bool:
        return await self.connection.connect(mode, address)

    def disconnect(self) -> None:
        self.connection.disconnect()

    async def shutdown(self) -> None:
        self.dispatcher.cancel_all()
        if self._resync_task is not None:
            self._resync_task.cancel()
            self._resync_task = None
        await self.connection.shutdown()

    # ---- Internals ----

    def _input_enabled(self) -> bool:
        if not self._power:
            logging.debug("Input ignored: power is off")
            return False
        if not self.connection.is_connected:
            logging.debug("Input ignored: not connected")
            return False
        return True

    def _apply(self, result: MapResult) -> bool:
        self._sync_input_display()
        if result.blocked:
            return False
        for update in result.updates:
            current = self._positions[update.servo]
            if update.absolute:
                target = clamp(update.value)
            else:
                target = apply_delta(current, update.value)
            self._positions[update.servo] = target
            self.state.set_position(update.servo, target)
            self._dispatch(update.servo, target)
        return True

    def _dispatch(self, servo: ServoId, angle: int) -> None:
        if not self.can_command:
            return
        self.dispatcher.dispatch(servo, angle)

    def _sync_input_display(self) -> None:
        direction = self.mapper.active_direction
        self.state.active_direction = direction.value if direction else ""
        self.state.joystick = list(self.mapper.joystick)

    def _reconcile(self, snapshot: StatusSnapshot) -> None:
        if snapshot.angles is None:
            return
        marks = snapshot.command_generations
        for servo in ServoId:
            if self.dispatcher.is_pending(servo):
                # Keep the optimistic value until the newer command settles
                continue
            if marks is not None and marks[servo] != self.dispatcher.generation(servo):
                # Read was issued before the latest command for this servo
                continue
            angle = clamp(snapshot.angles[servo])
            self._positions[servo] = angle
            self.state.set_position(servo, angle)
        self.state.last_update_ts = snapshot.timestamp

    def _on_connection_change(self, conn: ConnectionState) -> None:
        self.state.connection = conn.status.value
        self.state.last_error = conn.last_error
        if conn.status is ConnectionStatus.CONNECTED:
            self.state.base_url = conn.base_url
        if conn.status is not ConnectionStatus.CONNECTED:
            self.dispatcher.cancel_all()

    def _on_command_outcome(self, outcome: CommandOutcome) -> None:
        if outcome.ok or not self.config.resync_on_command_failure:
            return
        if self._resync_task is None or self._resync_task.done():
            self._resync_task = asyncio.create_task(self.connection.sync_status())
