"""
Progress bus for installation steps.

The orchestrator publishes one InstallationStep per status change; the UI
(or anything else) subscribes, optionally for a single server. Delivery is
synchronous and in publish order. A failing subscriber is logged and
skipped so it can never break an installation.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    """Status of a single installation step."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class InstallationStep:
    """A status change for one step of one server's install run."""
    server_name: str
    step_name: str
    status: StepStatus
    message: str = ""

    def to_dict(self) -> dict:
        return {
            "server": self.server_name,
            "step": self.step_name,
            "status": self.status.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InstallationStep":
        return cls(
            server_name=data["server"],
            step_name=data["step"],
            status=StepStatus(data["status"]),
            message=data.get("message", ""),
        )


StepHandler = Callable[[InstallationStep], None]


class ProgressBus:
    """
    Publish/subscribe channel for InstallationStep events.

    Built once at startup and handed to every component that reports
    progress. There is no buffering: late subscribers miss earlier events.
    """

    def __init__(self):
        self._subscribers: list[tuple[Optional[str], StepHandler]] = []

    def subscribe(
        self,
        handler: StepHandler,
        server: Optional[str] = None,
    ) -> Callable[[], None]:
        """
        Register a handler.

        Args:
            handler: Called with every matching step
            server: Only deliver steps for this server name (all when None)

        Returns:
            A function that removes the subscription
        """
        entry = (server, handler)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(entry)
            except ValueError:
                pass

        return unsubscribe

    def publish(self, step: InstallationStep) -> None:
        """Deliver a step to every current subscriber."""
        # Snapshot so handlers may unsubscribe while being called
        for server, handler in list(self._subscribers):
            if server is not None and server != step.server_name:
                continue
            try:
                handler(step)
            except Exception:
                logger.exception(
                    f"[{step.server_name}] Progress subscriber failed on step '{step.step_name}'"
                )

    def reporter(self, server_name: str) -> "StepReporter":
        """Get a reporter bound to one server."""
        return StepReporter(self, server_name)


class StepReporter:
    """Convenience wrapper that publishes steps for a single server."""

    def __init__(self, bus: ProgressBus, server_name: str):
        self.bus = bus
        self.server_name = server_name

    def emit(self, step_name: str, status: StepStatus, message: str = "") -> None:
        self.bus.publish(InstallationStep(self.server_name, step_name, status, message))

    def pending(self, step_name: str, message: str = "Waiting...") -> None:
        self.emit(step_name, StepStatus.PENDING, message)

    def started(self, step_name: str, message: str) -> None:
        self.emit(step_name, StepStatus.IN_PROGRESS, message)

    def completed(self, step_name: str, message: str) -> None:
        self.emit(step_name, StepStatus.COMPLETE, message)

    def failed(self, step_name: str, message: str) -> None:
        self.emit(step_name, StepStatus.ERROR, message)


class InstallationProgress:
    """
    Last-write-wins view of the steps for one server.

    Mirrors what the progress panel in the UI shows: steps keep the order
    they first appeared in, and a newer event for the same step replaces
    the older one.
    """

    def __init__(self, bus: ProgressBus, server_name: str):
        self.server_name = server_name
        self._steps: "OrderedDict[str, InstallationStep]" = OrderedDict()
        self.active_step: Optional[str] = None
        self._unsubscribe = bus.subscribe(self._on_step, server=server_name)

    def _on_step(self, step: InstallationStep) -> None:
        if step.status == StepStatus.IN_PROGRESS:
            self.active_step = step.step_name
        self._steps[step.step_name] = step

    @property
    def steps(self) -> list[InstallationStep]:
        return list(self._steps.values())

    def status_of(self, step_name: str) -> Optional[StepStatus]:
        step = self._steps.get(step_name)
        return step.status if step else None

    @property
    def has_errors(self) -> bool:
        return any(s.status == StepStatus.ERROR for s in self._steps.values())

    @property
    def finished(self) -> bool:
        """True once a step failed or every step completed."""
        if self.has_errors:
            return True
        return bool(self._steps) and all(
            s.status == StepStatus.COMPLETE for s in self._steps.values()
        )

    def close(self) -> None:
        self._unsubscribe()
