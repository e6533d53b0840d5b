"""Action models — kinds, status state machine, and per-run outcomes."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ActionKind(str, Enum):
    """The four kinds of work a deploy pipeline performs."""

    SOURCE = "source"
    BUILD = "build"
    DEPLOY = "deploy"
    INVALIDATE = "invalidate"


class ActionStatus(str, Enum):
    """Strict status model for each action in a run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ActionStatus.SUCCEEDED, ActionStatus.FAILED)


# Valid status transitions. Terminal states have no outgoing transitions;
# retry is a new run, never a transition.
VALID_TRANSITIONS: dict[ActionStatus, set[ActionStatus]] = {
    ActionStatus.PENDING: {ActionStatus.RUNNING},
    ActionStatus.RUNNING: {ActionStatus.SUCCEEDED, ActionStatus.FAILED},
    ActionStatus.SUCCEEDED: set(),
    ActionStatus.FAILED: set(),
}


class RunEvent(BaseModel):
    """Records a single action status transition for the run log."""

    model_config = ConfigDict(frozen=True)

    sequence: int
    action_name: str
    stage_name: str
    run_order: int
    from_status: ActionStatus
    to_status: ActionStatus
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def transition(self) -> str:
        return f"{self.from_status.value}->{self.to_status.value}"


class ActionOutcome(BaseModel):
    """Terminal (or never-started) status of one action in a run."""

    model_config = ConfigDict(frozen=True)

    action_name: str
    kind: ActionKind
    stage_name: str
    run_order: int
    status: ActionStatus = ActionStatus.PENDING
    input_artifacts: list[str] = []
    output_artifacts: list[str] = []
    details: dict[str, Any] = {}
    diagnostics: str = ""
    error_type: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def started(self) -> bool:
        return self.started_at is not None

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()
