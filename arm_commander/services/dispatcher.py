from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Protocol

from arm_commander.angles import clamp
from arm_commander.constants import COMMAND_TIMEOUT_S
from arm_commander.services.errors import ConnectivityTimeout, DeviceError
from arm_commander.state import CommandOutcome, ServoId

if TYPE_CHECKING:
    from collections.abc import Callable


class ServoTransport(Protocol):
    async def set_servo_angle(self, channel: int, angle: float, timeout: float = ...) -> str: ...


class CommandHandle:
    """
    One in-flight setServo request.

    At most one outcome is recorded per handle; a cancelled handle never
    records one.
    """

    def __init__(self, servo: ServoId, angle: int, generation: int) -> None:
        self.servo = servo
        self.angle = angle
        self.generation = generation
        self.outcome: CommandOutcome | None = None
        self.cancelled = False
        self._task: asyncio.Task | None = None

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self.cancelled = True
            self._task.cancel()

    def done(self) -> bool:
        return self._task is None or self._task.done()

    async def wait(self) -> CommandOutcome | None:
        if self._task is not None:
            await asyncio.wait([self._task])
        return self.outcome

    def _settle(self, outcome: CommandOutcome) -> bool:
        if self.outcome is not None or self.cancelled:
            return False
        self.outcome = outcome
        return True


class CommandDispatcher:
    """
    Fire-and-forget setServo dispatch with one outstanding request per servo.

    Each dispatch bumps the servo's generation and cancels the previous
    request for that servo. Only the completion whose generation is still
    current is reported.
    """

    def __init__(
        self,
        client: ServoTransport,
        timeout: float = COMMAND_TIMEOUT_S,
        on_outcome: Callable[[CommandOutcome], None] | None = None,
    ) -> None:
        self.client = client
        self.timeout = timeout
        self.on_outcome = on_outcome
        self._generations: dict[ServoId, int] = {servo: 0 for servo in ServoId}
        self._pending: dict[ServoId, CommandHandle] = {}
        self.last_outcomes: dict[ServoId, CommandOutcome] = {}

    def generation(self, servo: ServoId) -> int:
        return self._generations[servo]

    def generations(self) -> dict[ServoId, int]:
        return dict(self._generations)

    def is_pending(self, servo: ServoId) -> bool:
        handle = self._pending.get(servo)
        return handle is not None and not handle.done()

    def dispatch(self, servo: ServoId, angle: float) -> CommandHandle:
        previous = self._pending.pop(servo, None)
        if previous is not None and not previous.done():
            logging.debug("Superseding %s -> %s°", servo.value, previous.angle)
            previous.cancel()

        self._generations[servo] += 1
        handle = CommandHandle(servo, clamp(angle), self._generations[servo])
        handle._task = asyncio.create_task(self._run(handle))
        self._pending[servo] = handle
        return handle

    def cancel_all(self) -> None:
        for servo, handle in list(self._pending.items()):
            handle.cancel()
            # A later completion must not count as current
            self._generations[servo] += 1
        self._pending.clear()

    async def wait_idle(self) -> None:
        """Wait until every request dispatched so far has settled."""
        handles = list(self._pending.values())
        if handles:
            await asyncio.gather(*(h.wait() for h in handles))

    async def _run(self, handle: CommandHandle) -> None:
        servo = handle.servo
        try:
            await self.client.set_servo_angle(servo.channel, handle.angle, self.timeout)
        except asyncio.CancelledError:
            handle.cancelled = True
            raise
        except ConnectivityTimeout as e:
            logging.error("Servo command timeout: %s -> %s° (%s)", servo.value, handle.angle, e)
            outcome = CommandOutcome(servo, handle.angle, ok=False, error=str(e))
        except DeviceError as e:
            logging.warning("Servo command failed: %s -> %s° (%s)", servo.value, handle.angle, e)
            outcome = CommandOutcome(servo, handle.angle, ok=False, error=str(e))
        except Exception as e:
            logging.exception("Servo command error: %s -> %s°", servo.value, handle.angle)
            outcome = CommandOutcome(servo, handle.angle, ok=False, error=str(e))
        else:
            logging.info("Sent %s -> %s°", servo.value, handle.angle)
            outcome = CommandOutcome(servo, handle.angle, ok=True)
        outcome.timestamp = time.time()
        self._complete(handle, outcome)

    def _complete(self, handle: CommandHandle, outcome: CommandOutcome) -> None:
        if not handle._settle(outcome):
            return
        servo = handle.servo
        if self._generations[servo] != handle.generation:
            logging.debug("Dropping stale result for %s (gen %s)", servo.value, handle.generation)
            return
        if self._pending.get(servo) is handle:
            del self._pending[servo]
        self.last_outcomes[servo] = outcome
        if self.on_outcome is not None:
            self.on_outcome(outcome)
