from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from nicegui import binding

from arm_commander.constants import NEUTRAL_ANGLE_DEG


class ServoId(str, Enum):
    BASE = "base"
    SHOULDER = "shoulder"
    ELBOW = "elbow"
    GRIPPER = "gripper"

    @property
    def channel(self) -> int:
        """Device channel number (1..4)."""
        return SERVO_CHANNELS[self]

    @classmethod
    def from_channel(cls, channel: int) -> "ServoId":
        for servo, ch in SERVO_CHANNELS.items():
            if ch == channel:
                return servo
        raise ValueError(f"No servo on channel {channel}")


SERVO_CHANNELS: dict[ServoId, int] = {
    ServoId.BASE: 1,
    ServoId.SHOULDER: 2,
    ServoId.ELBOW: 3,
    ServoId.GRIPPER: 4,
}


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


ServoPositions = dict[ServoId, int]


def neutral_positions() -> ServoPositions:
    return {servo: NEUTRAL_ANGLE_DEG for servo in ServoId}


@dataclass
class ConnectionState:
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    last_error: str = ""
    base_url: str = ""


@dataclass
class StatusSnapshot:
    angles: ServoPositions | None = None  # None when the payload was malformed
    ip: str = ""
    mode: str = ""
    timestamp: float = 0.0
    # Per-servo command generations taken when the read was issued
    command_generations: dict[ServoId, int] | None = None


@dataclass
class CommandOutcome:
    servo: ServoId
    angle: int
    ok: bool
    error: str = ""
    timestamp: float = 0.0


# Shared state for UI bindings; the controller is the only writer
@binding.bindable_dataclass
class ArmState:
    base: int = NEUTRAL_ANGLE_DEG
    shoulder: int = NEUTRAL_ANGLE_DEG
    elbow: int = NEUTRAL_ANGLE_DEG
    gripper: int = NEUTRAL_ANGLE_DEG
    power: bool = False
    # Mirrors of the connection manager's state, display only
    connection: str = ConnectionStatus.DISCONNECTED.value
    last_error: str = ""
    base_url: str = ""
    active_direction: str = ""
    joystick: list[float] = field(default_factory=lambda: [0.0, 0.0])
    last_update_ts: float = 0.0

    def positions(self) -> ServoPositions:
        return {servo: int(getattr(self, servo.value)) for servo in ServoId}

    def set_position(self, servo: ServoId, angle: int) -> None:
        setattr(self, servo.value, int(angle))

    def set_positions(self, positions: ServoPositions) -> None:
        for servo in ServoId:
            self.set_position(servo, positions[servo])


# Module-level singleton
arm_state = ArmState()
