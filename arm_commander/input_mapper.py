from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from arm_commander.constants import (
    DPAD_STEP_DEG,
    GRIPPER_CLOSED_DEG,
    GRIPPER_OPEN_DEG,
    JOYSTICK_DEAD_ZONE,
    JOYSTICK_STEP_DEG,
    NEUTRAL_ANGLE_DEG,
)
from arm_commander.state import ServoId


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


# D-pad direction -> (servo, sign)
_DPAD_MAP: dict[Direction, tuple[ServoId, int]] = {
    Direction.LEFT: (ServoId.BASE, -1),
    Direction.RIGHT: (ServoId.BASE, 1),
    Direction.UP: (ServoId.SHOULDER, 1),
    Direction.DOWN: (ServoId.SHOULDER, -1),
}


@dataclass(frozen=True)
class ServoUpdate:
    """Either a relative delta or an absolute target for one servo."""
    servo: ServoId
    value: float
    absolute: bool = False


@dataclass(frozen=True)
class MapResult:
    updates: list[ServoUpdate] = field(default_factory=list)
    blocked: bool = False


BLOCKED = MapResult(blocked=True)


def normalize_joystick(dx: float, dy: float, radius: float) -> tuple[float, float]:
    """
    Convert a pointer offset from the control's center into a vector in [-1, 1].
    The offset magnitude is capped at radius, keeping the direction.

    For front ends that report raw pointer offsets; ui.joystick already
    delivers a normalized vector.
    """
    if radius <= 0:
        raise ValueError("radius must be > 0")
    distance = math.hypot(dx, dy)
    if distance == 0:
        return (0.0, 0.0)
    capped = min(radius, distance)
    scale = capped / distance / radius
    return (dx * scale, dy * scale)


def axis_delta(value: float, step: float = JOYSTICK_STEP_DEG) -> float:
    """Joystick axis contribution in degrees; zero inside the dead-zone."""
    if abs(value) <= JOYSTICK_DEAD_ZONE:
        return 0.0
    return max(-1.0, min(1.0, value)) * step


class InputMapper:
    """Turns D-pad, joystick and button events into servo updates."""

    def __init__(
        self,
        dpad_step: float = DPAD_STEP_DEG,
        joystick_step: float = JOYSTICK_STEP_DEG,
    ) -> None:
        self.dpad_step = dpad_step
        self.joystick_step = joystick_step
        # Display-only state
        self.active_direction: Direction | None = None
        self.joystick: tuple[float, float] = (0.0, 0.0)

    # ---- D-pad ----

    def press(self, direction: Direction | str, powered: bool) -> MapResult:
        if not powered:
            return BLOCKED
        direction = Direction(direction)
        self.active_direction = direction
        servo, sign = _DPAD_MAP[direction]
        return MapResult([ServoUpdate(servo, sign * self.dpad_step)])

    def release(self, direction: Direction | str) -> MapResult:
        direction = Direction(direction)
        if self.active_direction == direction:
            self.active_direction = None
        return MapResult()

    # ---- Joystick ----

    def joystick_move(self, x: float, y: float, powered: bool) -> MapResult:
        if not powered:
            return BLOCKED
        self.joystick = (float(x), float(y))
        updates = []
        dx = axis_delta(x, self.joystick_step)
        if dx:
            updates.append(ServoUpdate(ServoId.ELBOW, dx))
        dy = axis_delta(y, self.joystick_step)
        if dy:
            updates.append(ServoUpdate(ServoId.GRIPPER, dy))
        return MapResult(updates)

    def joystick_release(self) -> MapResult:
        self.joystick = (0.0, 0.0)
        return MapResult()

    def clear(self) -> None:
        """Forget pressed direction and joystick vector."""
        self.active_direction = None
        self.joystick = (0.0, 0.0)

    # ---- Discrete actions ----

    def reset(self, powered: bool) -> MapResult:
        if not powered:
            return BLOCKED
        return MapResult(
            [ServoUpdate(servo, NEUTRAL_ANGLE_DEG, absolute=True) for servo in ServoId]
        )

    def gripper_open(self, powered: bool) -> MapResult:
        if not powered:
            return BLOCKED
        return MapResult([ServoUpdate(ServoId.GRIPPER, GRIPPER_OPEN_DEG, absolute=True)])

    def gripper_close(self, powered: bool) -> MapResult:
        if not powered:
            return BLOCKED
        return MapResult(
            [ServoUpdate(ServoId.GRIPPER, GRIPPER_CLOSED_DEG, absolute=True)]
        )
