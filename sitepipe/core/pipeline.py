"""Pipeline — an ordered list of stages executed as one linear run.

The Pipeline owns the run: it creates a fresh run context (and artifact
table) per run, drives stages strictly in declared order, halts at the
first failed stage, and reports every action's status in a ``RunResult``.
It never retries; re-running is an operator decision.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone

from sitepipe.core.artifact_table import ArtifactTable
from sitepipe.core.context import RunContext
from sitepipe.core.errors import OrderingViolation, PipelineBusyError
from sitepipe.core.stage import Stage
from sitepipe.models.actions import ActionOutcome, ActionStatus
from sitepipe.models.pipeline import PipelineStatus, RunResult

logger = logging.getLogger(__name__)


class Pipeline:
    """Linear stage executor.

    Parameters
    ----------
    name:
        Pipeline name (reported in every RunResult).
    stages:
        Stages in execution order.  Validated at construction.
    distribution_id:
        Distribution served by this pipeline, echoed in the RunResult.
    """

    def __init__(
        self,
        name: str,
        stages: Sequence[Stage],
        *,
        distribution_id: str = "",
    ) -> None:
        if not stages:
            raise OrderingViolation(f"Pipeline {name!r} has no stages")
        self.name = name
        self.stages: list[Stage] = list(stages)
        self.distribution_id = distribution_id
        self.status = PipelineStatus.PENDING

        self._run_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._context: RunContext | None = None
        self._abort_requested = False
        self._last_artifacts: ArtifactTable | None = None
        self._validate()

    # ------------------------------------------------------------------
    # Construction-time checks
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        stage_names = [s.name for s in self.stages]
        if len(set(stage_names)) != len(stage_names):
            raise OrderingViolation(f"Pipeline {self.name!r} has duplicate stage names")

        seen_actions: set[str] = set()
        producers: dict[str, str] = {}
        for stage in self.stages:
            for action in stage.actions:
                if action.name in seen_actions:
                    raise OrderingViolation(
                        f"Pipeline {self.name!r}: action name {action.name!r} is used twice"
                    )
                seen_actions.add(action.name)
                for aid in action.outputs:
                    if aid in producers:
                        raise OrderingViolation(
                            f"Pipeline {self.name!r}: artifact {aid!r} has two producers "
                            f"({producers[aid]!r} and {action.name!r})"
                        )
                    producers[aid] = action.name

        # Every input must be produced earlier: in a previous stage, or in an
        # earlier bucket of the same stage (checked by Stage itself).
        available: set[str] = set()
        for stage in self.stages:
            in_stage = {aid for a in stage.actions for aid in a.outputs}
            for action in stage.actions:
                for aid in action.inputs:
                    if aid not in available and aid not in in_stage:
                        raise OrderingViolation(
                            f"Pipeline {self.name!r}: {action.name!r} consumes {aid!r}, "
                            f"which no earlier action produces"
                        )
            available |= in_stage

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def run(self, run_id: str | None = None) -> RunResult:
        """Execute all stages in order and return the run's result.

        Raises ``PipelineBusyError`` if a run is already in flight.
        """
        if not self._run_lock.acquire(blocking=False):
            raise PipelineBusyError(f"Pipeline {self.name!r} is already running")
        try:
            run_id = run_id or self._new_run_id()
            with self._state_lock:
                context = self._start_context(run_id)
            return self._run(context)
        finally:
            with self._state_lock:
                self._context = None
                self._abort_requested = False
                self._run_lock.release()

    def abort(self) -> None:
        """Stop the current run from launching further run-order groups.

        An abort that arrives after the run has started but before its
        context exists is held and applied when the context is created.
        """
        with self._state_lock:
            context = self._context
            if context is not None:
                logger.warning("Pipeline %s: abort requested for run %s", self.name, context.run_id)
                context.abort()
            elif self._run_lock.locked():
                logger.warning("Pipeline %s: abort requested while the run is starting", self.name)
                self._abort_requested = True

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def _start_context(self, run_id: str) -> RunContext:
        # Caller holds _state_lock.
        if self._last_artifacts is not None:
            self._last_artifacts.supersede()
        context = RunContext(run_id)
        if self._abort_requested:
            context.abort()
        self._context = context
        self._last_artifacts = context.artifacts
        return context

    def _run(self, context: RunContext) -> RunResult:
        run_id = context.run_id
        self.status = PipelineStatus.RUNNING
        started_at = datetime.now(timezone.utc)
        logger.info("Pipeline %s: run %s started (%d stages)", self.name, run_id, len(self.stages))

        outcomes: list[ActionOutcome] = []
        status = PipelineStatus.SUCCEEDED
        for stage in self.stages:
            if status != PipelineStatus.SUCCEEDED:
                outcomes.extend(a.pending_outcome(stage.name) for a in stage.actions)
                continue
            if context.aborted:
                status = PipelineStatus.ABORTED
                outcomes.extend(a.pending_outcome(stage.name) for a in stage.actions)
                continue

            result = stage.run(context)
            outcomes.extend(result.outcomes)
            if result.failed:
                status = PipelineStatus.FAILED
                failed = next(o for o in result.outcomes if o.status == ActionStatus.FAILED)
                logger.error(
                    "Pipeline %s: run %s halted at %s [%s]: %s",
                    self.name,
                    run_id,
                    failed.action_name,
                    failed.kind.value,
                    failed.error_type,
                )
            elif result.aborted:
                status = PipelineStatus.ABORTED

        self.status = status
        logger.info("Pipeline %s: run %s %s", self.name, run_id, status.value)
        return RunResult(
            run_id=run_id,
            pipeline_name=self.name,
            status=status,
            outcomes=outcomes,
            artifacts=context.artifacts.artifacts(),
            events=context.events,
            distribution_id=self.distribution_id,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

    def _new_run_id(self) -> str:
        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        return f"{self.name}-{ts}-{uuid.uuid4().hex[:6]}"

    def __repr__(self) -> str:
        return f"<Pipeline name={self.name!r} stages={[s.name for s in self.stages]}>"
