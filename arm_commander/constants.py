from __future__ import annotations

import logging
import os

# Angle range shared by every servo channel
MIN_ANGLE_DEG: int = 0
MAX_ANGLE_DEG: int = 180
NEUTRAL_ANGLE_DEG: int = 90

# Input mapping
DPAD_STEP_DEG: float = 5.0
JOYSTICK_STEP_DEG: float = 2.0
JOYSTICK_DEAD_ZONE: float = 0.1
GRIPPER_OPEN_DEG: int = MAX_ANGLE_DEG
GRIPPER_CLOSED_DEG: int = MIN_ANGLE_DEG

# Device targets
DEFAULT_DEVICE_ADDRESS: str = "192.168.4.1"
DEFAULT_LOCALHOST_URL: str = "http://localhost:3000"
MOCK_DEVICE_PORT: int = 3000

# Request deadlines (seconds) and poll cadence
PROBE_TIMEOUT_S: float = 5.0
POLL_TIMEOUT_S: float = 3.0
COMMAND_TIMEOUT_S: float = 3.0
POLL_INTERVAL_S: float = 1.0
MAX_POLL_FAILURES: int = 5

# Webserver bind (NiceGUI host/port)
SERVER_HOST: str = os.getenv("ARM_SERVER_IP", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("ARM_SERVER_PORT", "8080"))


def _resolve_log_level() -> int:
    s = os.getenv("ARM_LOG_LEVEL")
    if s:
        name = s.strip().upper()
        mapping = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }
        return mapping.get(name, logging.WARNING)
    else:
        return logging.WARNING


LOG_LEVEL: int = _resolve_log_level()
