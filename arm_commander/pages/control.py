from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from nicegui import ui

from arm_commander.constants import MAX_ANGLE_DEG
from arm_commander.input_mapper import Direction
from arm_commander.state import ConnectionStatus, ServoId

if TYPE_CHECKING:
    from nicegui.events import JoystickEventArguments, ValueChangeEventArguments

    from arm_commander.controller import ArmController


_CONNECTION_COLORS = {
    ConnectionStatus.CONNECTED.value: "#21BA45",
    ConnectionStatus.CONNECTING.value: "#F2C037",
    ConnectionStatus.DISCONNECTED.value: "#DB2828",
}

# (direction, icon, hint) in D-pad reading order
_DPAD_ROWS: list[list[tuple[Direction, str, str] | None]] = [
    [None, (Direction.UP, "arrow_upward", "Shoulder"), None],
    [(Direction.LEFT, "arrow_back", "Base"), None, (Direction.RIGHT, "arrow_forward", "Base")],
    [None, (Direction.DOWN, "arrow_downward", "Shoulder"), None],
]


class ControlPage:
    """Arm control page: connection panel, power, position readouts and input controls."""

    def __init__(self, controller: ArmController) -> None:
        self.controller = controller

        # Connection panel widgets
        self.mode_toggle: ui.toggle | None = None
        self.address_input: ui.input | None = None
        self.connection_label: ui.label | None = None

        # Response log (attached to logging by main)
        self.response_log: ui.log | None = None

    # ---- Feedback ----

    def _notify_blocked(self) -> None:
        if not self.controller.power:
            ui.notify("Power is off", color="warning")
        else:
            ui.notify("Not connected to device", color="warning")

    def _on_connection_text(self, status: str) -> str:
        if self.connection_label is not None:
            self.connection_label.style(f"color: {_CONNECTION_COLORS.get(status, '#9E9E9E')}")
        return "Connecting..." if status == ConnectionStatus.CONNECTING.value else status

    # ---- Actions ----

    async def _connect(self) -> None:
        mode = self.mode_toggle.value if self.mode_toggle else None
        address = self.address_input.value if self.address_input else None
        try:
            ok = await self.controller.connect(mode, address)
        except ValueError as e:
            ui.notify(f"Invalid target: {e}", color="negative")
            return
        if ok:
            ui.notify(f"Connected to {self.controller.base_url}", color="positive")
        else:
            ui.notify(self.controller.last_error or "Connection failed", color="negative")

    def _disconnect(self) -> None:
        self.controller.disconnect()
        ui.notify("Disconnected", color="warning")

    def _on_mode_change(self, e: ValueChangeEventArguments) -> None:
        try:
            url = self.controller.select_target(mode=e.value)
            logging.debug("Selected target %s", url)
        except ValueError as ex:
            ui.notify(f"Invalid target: {ex}", color="negative")

    def _toggle_power(self) -> None:
        on = self.controller.toggle_power()
        ui.notify("Power ON" if on else "Power OFF", color="positive" if on else "warning")

    def _press(self, direction: Direction) -> None:
        if not self.controller.press_direction(direction):
            self._notify_blocked()

    def _release(self, direction: Direction) -> None:
        self.controller.release_direction(direction)

    def _joystick_move(self, e: JoystickEventArguments) -> None:
        if e.x is None or e.y is None:
            return
        # ui.joystick reports y up-positive; the mapping uses screen axes (down-positive)
        if not self.controller.move_joystick(e.x, -e.y):
            self._notify_blocked()

    def _joystick_end(self) -> None:
        self.controller.release_joystick()

    def _reset(self) -> None:
        if not self.controller.reset():
            self._notify_blocked()

    def _open_gripper(self) -> None:
        if not self.controller.open_gripper():
            self._notify_blocked()

    def _close_gripper(self) -> None:
        if not self.controller.close_gripper():
            self._notify_blocked()

    # ---- UI ----

    def _build_connection_panel(self) -> None:
        state = self.controller.state
        config = self.controller.config
        with ui.card().classes("w-full"):
            with ui.row().classes("items-center gap-2"):
                ui.label("Connection:").classes("text-sm")
                self.connection_label = ui.label().classes("text-sm")
                self.connection_label.bind_text_from(
                    state, "connection", backward=self._on_connection_text
                )
                ui.label().classes("text-xs text-gray-500").bind_text_from(state, "base_url")
            self.mode_toggle = ui.toggle(
                {"wifi": f"WiFi ({config.device_address})", "localhost": "Localhost"},
                value=config.mode,
                on_change=self._on_mode_change,
            ).props("dense")
            with ui.row().classes("items-center gap-2"):
                self.address_input = (
                    ui.input(label="Device address", value=config.device_address)
                    .props("dense")
                    .bind_visibility_from(self.mode_toggle, "value", value="wifi")
                )
                self.address_input.on("keydown.enter", self._connect)
                ui.button("Connect", on_click=self._connect).props(
                    "unelevated color=primary"
                ).mark("connect")
                ui.button("Disconnect", on_click=self._disconnect).props("flat").mark(
                    "disconnect"
                )
            ui.label().classes("text-xs text-red-500").bind_text_from(
                state, "last_error"
            ).bind_visibility_from(state, "last_error", backward=bool)

    def _build_positions(self) -> None:
        state = self.controller.state
        with ui.card().classes("w-full"):
            for servo in ServoId:
                with ui.row().classes("w-full items-center no-wrap gap-2"):
                    ui.label(f"{servo.value.capitalize()}:").classes("w-20 text-sm")
                    ui.linear_progress(show_value=False, size="12px").classes(
                        "flex-grow"
                    ).bind_value_from(
                        state, servo.value, backward=lambda v: float(v) / MAX_ANGLE_DEG
                    )
                    ui.label().classes("w-12 text-right text-sm").bind_text_from(
                        state, servo.value, backward=lambda v: f"{int(v)}°"
                    )

    def _build_dpad(self) -> None:
        with ui.column().classes("items-center gap-1"):
            ui.label("Base & Shoulder Control").classes("text-md font-medium")
            for row in _DPAD_ROWS:
                with ui.row().classes("gap-1"):
                    for cell in row:
                        if cell is None:
                            ui.element("div").classes("w-14 h-14")
                            continue
                        direction, icon, hint = cell
                        btn = ui.button(icon=icon).classes("w-14 h-14").tooltip(hint)
                        btn.on("mousedown", partial(self._press, direction))
                        btn.on("mouseup", partial(self._release, direction))
                        btn.on("mouseleave", partial(self._release, direction))
                        btn.on("touchstart.prevent", partial(self._press, direction))
                        btn.on("touchend.prevent", partial(self._release, direction))
            ui.label("←→ Base | ↑↓ Shoulder").classes("text-xs text-gray-500")

    def _build_joystick(self) -> None:
        state = self.controller.state
        with ui.column().classes("items-center gap-1"):
            ui.label("Elbow & Gripper Control").classes("text-md font-medium")
            ui.joystick(
                color="blue",
                size=100,
                on_move=self._joystick_move,
                on_end=self._joystick_end,
            ).classes("w-40 h-40 bg-gray-200 rounded-full")
            ui.label("X-Axis: Elbow | Y-Axis: Gripper").classes("text-xs text-gray-500")
            ui.label().classes("text-xs").bind_text_from(
                state, "joystick", backward=lambda v: f"X: {v[0]:.2f} | Y: {v[1]:.2f}"
            )

    def build(self) -> None:
        state = self.controller.state
        with ui.column().classes("w-full max-w-3xl mx-auto gap-4 p-4"):
            with ui.row().classes("w-full items-center justify-between"):
                ui.label("Robotic Arm Controller").classes("text-xl font-bold")
                ui.label().classes("text-sm").bind_text_from(
                    state, "power", backward=lambda p: f"Power: {'ON' if p else 'OFF'}"
                )

            self._build_connection_panel()

            power_button = ui.button(on_click=self._toggle_power).classes("w-full")
            power_button.mark("power").bind_text_from(
                state, "power", backward=lambda p: "POWER ON" if p else "POWER OFF"
            )

            self._build_positions()

            with ui.row().classes("w-full justify-around"):
                self._build_dpad()
                self._build_joystick()

            with ui.row().classes("w-full justify-center gap-2"):
                ui.button("RESET POSITION", on_click=self._reset).props("color=warning")
                ui.button("OPEN GRIPPER", on_click=self._open_gripper).props(
                    "color=positive"
                )
                ui.button("CLOSE GRIPPER", on_click=self._close_gripper).props(
                    "color=negative"
                )

            self.response_log = ui.log(max_lines=200).classes("w-full h-40")
