from __future__ import annotations


class DeviceError(Exception):
    """Base class for failures talking to the arm device."""


class ConnectivityTimeout(DeviceError):
    """A request exceeded its deadline and was aborted client-side."""

    def __init__(self, timeout: float, what: str = "request") -> None:
        super().__init__(f"{what} timed out after {timeout:.1f}s")
        self.timeout = timeout


class ConnectivityRefused(DeviceError):
    """Network failure or non-success HTTP status on a status read."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class CommandRejected(DeviceError):
    """The device answered a setServo call with a non-success status."""

    def __init__(self, status: int, reason: str = "") -> None:
        super().__init__(f"setServo rejected ({status}): {reason}".rstrip(": "))
        self.status = status
        self.reason = reason


class MalformedResponse(DeviceError):
    """Status payload is missing expected fields."""
