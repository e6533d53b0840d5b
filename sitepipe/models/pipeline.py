"""Pipeline run result models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from sitepipe.models.actions import ActionKind, ActionOutcome, ActionStatus, RunEvent
from sitepipe.models.artifacts import Artifact


class PipelineStatus(str, Enum):
    """Overall status of a pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"


class RunResult(BaseModel):
    """Observable output of one pipeline run.

    ``outcomes`` lists every action in declaration order (stage order, then
    position within the stage), including actions that never started.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    pipeline_name: str
    status: PipelineStatus
    outcomes: list[ActionOutcome]
    artifacts: list[Artifact] = []
    events: list[RunEvent] = []
    distribution_id: str = ""
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == PipelineStatus.SUCCEEDED

    @property
    def failed_action(self) -> ActionOutcome | None:
        """The first action that reached ``Failed``, if any."""
        for outcome in self.outcomes:
            if outcome.status == ActionStatus.FAILED:
                return outcome
        return None

    @property
    def keys_written(self) -> list[str]:
        """Object keys written by the Deploy action(s) of this run."""
        keys: list[str] = []
        for outcome in self.outcomes:
            if outcome.kind == ActionKind.DEPLOY:
                keys.extend(outcome.details.get("keys_written", []))
        return keys

    def outcome(self, action_name: str) -> ActionOutcome:
        """Return the outcome of a named action."""
        for outcome in self.outcomes:
            if outcome.action_name == action_name:
                return outcome
        raise KeyError(f"No action named {action_name!r} in run {self.run_id}")

    def statuses(self) -> dict[str, ActionStatus]:
        return {o.action_name: o.status for o in self.outcomes}
