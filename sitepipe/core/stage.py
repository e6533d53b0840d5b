"""Stage — run-order groups executed behind barriers.

Actions are bucketed by ``run_order``; buckets run in ascending order.  All
members of a bucket run concurrently (fan-out) and the stage joins on every
one of them (fan-in) before deciding whether the next bucket may start.
A failure in a bucket lets its siblings finish but stops the next bucket.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from sitepipe.core.actions import BaseAction, DeployAction, InvalidationTrigger
from sitepipe.core.context import RunContext
from sitepipe.core.errors import OrderingViolation
from sitepipe.models.actions import ActionOutcome, ActionStatus

logger = logging.getLogger(__name__)


class StageResult:
    """Outcomes of one stage run, in declaration order."""

    def __init__(self, stage_name: str, outcomes: list[ActionOutcome], *, aborted: bool = False) -> None:
        self.stage_name = stage_name
        self.outcomes = outcomes
        self.aborted = aborted

    @property
    def failed(self) -> bool:
        return any(o.status == ActionStatus.FAILED for o in self.outcomes)

    @property
    def succeeded(self) -> bool:
        return all(o.status == ActionStatus.SUCCEEDED for o in self.outcomes)

    @property
    def outputs(self) -> list[str]:
        """Artifact ids produced by this stage."""
        return [aid for o in self.outcomes for aid in o.output_artifacts]


class Stage:
    """An ordered group of actions forming one pipeline barrier unit.

    Parameters
    ----------
    name:
        Stage name, unique within the pipeline.
    actions:
        The stage's actions.  Validated at construction; a conflicting
        layout raises ``OrderingViolation``.
    max_workers:
        Upper bound on concurrently running actions of one bucket.
    """

    def __init__(
        self,
        name: str,
        actions: Sequence[BaseAction],
        *,
        max_workers: int | None = None,
    ) -> None:
        if not name:
            raise ValueError("stage name must not be empty")
        if not actions:
            raise OrderingViolation(f"Stage {name!r} has no actions")
        self.name = name
        self.actions: list[BaseAction] = list(actions)
        self.max_workers = max_workers
        self._validate()

    # ------------------------------------------------------------------
    # Construction-time checks
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        names = [a.name for a in self.actions]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise OrderingViolation(
                f"Stage {self.name!r} has duplicate action names: {duplicates}"
            )

        for _, group in self.groups:
            claimed: dict[str, str] = {}
            for action in group:
                for resource in action.resources:
                    if resource in claimed:
                        raise OrderingViolation(
                            f"Stage {self.name!r}: {claimed[resource]!r} and {action.name!r} "
                            f"both write {resource!r} at run_order {action.run_order}"
                        )
                    claimed[resource] = action.name

        # An input produced inside this stage must come from an earlier bucket.
        produced_at = {
            aid: action.run_order for action in self.actions for aid in action.outputs
        }
        for action in self.actions:
            for aid in action.inputs:
                if aid in produced_at and produced_at[aid] >= action.run_order:
                    raise OrderingViolation(
                        f"Stage {self.name!r}: {action.name!r} (run_order {action.run_order}) "
                        f"consumes {aid!r}, produced at run_order {produced_at[aid]}"
                    )

        deploys = [a for a in self.actions if isinstance(a, DeployAction)]
        for trigger in (a for a in self.actions if isinstance(a, InvalidationTrigger)):
            for deploy in deploys:
                if trigger.run_order <= deploy.run_order:
                    raise OrderingViolation(
                        f"Stage {self.name!r}: invalidation {trigger.name!r} (run_order "
                        f"{trigger.run_order}) must run after deploy {deploy.name!r} "
                        f"(run_order {deploy.run_order})"
                    )

    @property
    def groups(self) -> list[tuple[int, list[BaseAction]]]:
        """Actions bucketed by run_order, ascending; declaration order within."""
        buckets: dict[int, list[BaseAction]] = {}
        for action in self.actions:
            buckets.setdefault(action.run_order, []).append(action)
        return sorted(buckets.items())

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self, context: RunContext) -> StageResult:
        """Run every bucket in order, stopping after a failed bucket."""
        outcomes: dict[str, ActionOutcome] = {}
        aborted = False
        halted = False

        for run_order, group in self.groups:
            if halted:
                break
            if context.aborted:
                logger.warning(
                    "Stage %s: run %s aborted before run_order %d",
                    self.name,
                    context.run_id,
                    run_order,
                )
                aborted = True
                break
            logger.info(
                "Stage %s: starting run_order %d (%d action(s))",
                self.name,
                run_order,
                len(group),
            )
            for outcome in self._run_group(group, context):
                outcomes[outcome.action_name] = outcome
                if outcome.status == ActionStatus.FAILED:
                    halted = True

        ordered = [
            outcomes.get(a.name) or a.pending_outcome(self.name) for a in self.actions
        ]
        return StageResult(self.name, ordered, aborted=aborted)

    def _run_group(self, group: list[BaseAction], context: RunContext) -> list[ActionOutcome]:
        if len(group) == 1:
            return [group[0].run(context, self.name)]
        workers = min(len(group), self.max_workers or len(group))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix=f"stage-{self.name}"
        ) as pool:
            futures = [pool.submit(action.run, context, self.name) for action in group]
            # Join every member before returning: the barrier.
            return [f.result() for f in futures]

    def __repr__(self) -> str:
        return f"<Stage name={self.name!r} actions={[a.name for a in self.actions]}>"
