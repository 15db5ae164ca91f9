from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

from arm_commander.constants import (
    COMMAND_TIMEOUT_S,
    DEFAULT_DEVICE_ADDRESS,
    DEFAULT_LOCALHOST_URL,
    MAX_POLL_FAILURES,
    POLL_INTERVAL_S,
    POLL_TIMEOUT_S,
    PROBE_TIMEOUT_S,
)

ConnectionMode = Literal["wifi", "localhost"]
CONNECTION_MODES: tuple[str, ...] = ("wifi", "localhost")

_TRUTHY = ("1", "true", "True", "yes", "YES", "on")


@dataclass
class ConnectionConfig:
    """Runtime configuration for the device link."""
    mode: ConnectionMode = "wifi"
    device_address: str = DEFAULT_DEVICE_ADDRESS
    localhost_url: str = DEFAULT_LOCALHOST_URL
    probe_timeout_s: float = PROBE_TIMEOUT_S
    poll_timeout_s: float = POLL_TIMEOUT_S
    command_timeout_s: float = COMMAND_TIMEOUT_S
    poll_interval_s: float = POLL_INTERVAL_S
    max_poll_failures: int = MAX_POLL_FAILURES  # 0 keeps the link up forever
    resync_on_command_failure: bool = False

    def __post_init__(self) -> None:
        if self.mode not in CONNECTION_MODES:
            raise ValueError(f"Unknown connection mode: {self.mode!r}")
        if self.poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be > 0")
        if self.max_poll_failures < 0:
            raise ValueError("max_poll_failures must be >= 0")

    @property
    def base_url(self) -> str:
        """URL of the currently selected target."""
        if self.mode == "localhost":
            return self.localhost_url.rstrip("/")
        address = (self.device_address or DEFAULT_DEVICE_ADDRESS).strip().rstrip("/")
        if "://" not in address:
            address = f"http://{address}"
        return address

    @classmethod
    def from_env(cls) -> "ConnectionConfig":
        mode = os.getenv("ARM_CONNECTION_MODE", "wifi").strip().lower()
        return cls(
            mode=mode,  # type: ignore[arg-type]
            device_address=os.getenv("ARM_DEVICE_ADDRESS", DEFAULT_DEVICE_ADDRESS),
            localhost_url=os.getenv("ARM_LOCALHOST_URL", DEFAULT_LOCALHOST_URL),
            probe_timeout_s=float(os.getenv("ARM_PROBE_TIMEOUT_S", str(PROBE_TIMEOUT_S))),
            poll_timeout_s=float(os.getenv("ARM_POLL_TIMEOUT_S", str(POLL_TIMEOUT_S))),
            command_timeout_s=float(
                os.getenv("ARM_COMMAND_TIMEOUT_S", str(COMMAND_TIMEOUT_S))
            ),
            poll_interval_s=float(os.getenv("ARM_POLL_INTERVAL_S", str(POLL_INTERVAL_S))),
            max_poll_failures=int(
                os.getenv("ARM_MAX_POLL_FAILURES", str(MAX_POLL_FAILURES))
            ),
            resync_on_command_failure=os.getenv("ARM_RESYNC_ON_COMMAND_FAILURE", "0")
            in _TRUTHY,
        )
