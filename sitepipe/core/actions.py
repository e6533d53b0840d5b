"""Action kinds with an enforced run lifecycle.

Every concrete action inherits from ``BaseAction`` and implements only
``execute()``.  The ``run()`` wrapper is **not overridable**; it enforces
the canonical lifecycle:

    pending->running -> resolve inputs -> execute -> register output
        -> running->succeeded | running->failed

Failures never escape ``run()``: they become a ``Failed`` outcome carrying
the error type and captured diagnostics.
"""

from __future__ import annotations

import abc
import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any, ClassVar, final

from pydantic import BaseModel, ConfigDict

from sitepipe.backends.errors import (
    StorageAccessDenied,
    StorageQuotaExceeded,
    UnknownDistributionError,
)
from sitepipe.backends.protocols import (
    BuildSandbox,
    CdnService,
    SourceLocation,
    SourceProvider,
    StorageBackend,
)
from sitepipe.core.context import RunContext
from sitepipe.core.errors import (
    ActionFailure,
    ActionTimeout,
    BuildFailure,
    DeployFailure,
    InvalidationFailure,
    OrderingViolation,
    SourceFetchError,
)
from sitepipe.models.actions import ActionKind, ActionOutcome, ActionStatus
from sitepipe.models.artifacts import SiteTree
from sitepipe.models.config import BuildSpec

logger = logging.getLogger(__name__)


class ActionResult(BaseModel):
    """What ``execute()`` hands back to the lifecycle wrapper."""

    model_config = ConfigDict(frozen=True)

    output: SiteTree | None = None
    details: dict[str, Any] = {}
    log: str = ""


class BaseAction(abc.ABC):
    """Abstract base for all pipeline actions.

    Parameters
    ----------
    name:
        Unique action name within the pipeline (also its id).
    run_order:
        Run-order bucket within the stage; must be ``>= 1``.
    inputs:
        Zero or one artifact id consumed.
    outputs:
        Zero or one artifact id produced.
    resources:
        External resources this action writes.  Actions sharing a run-order
        bucket must write disjoint resources.
    timeout_seconds:
        Wall-clock budget; an overrun is reported as ``ActionTimeout``.
    """

    kind: ClassVar[ActionKind]

    def __init__(
        self,
        name: str,
        *,
        run_order: int = 1,
        inputs: Sequence[str] = (),
        outputs: Sequence[str] = (),
        resources: Sequence[str] = (),
        timeout_seconds: float | None = None,
    ) -> None:
        if not name:
            raise ValueError("action name must not be empty")
        if run_order < 1:
            raise OrderingViolation(
                f"Action {name!r} has run_order={run_order}; run_order must be >= 1"
            )
        if len(inputs) > 1 or len(outputs) > 1:
            raise ValueError(
                f"Action {name!r} may consume at most one artifact and produce at most one"
            )
        self.name = name
        self.run_order = run_order
        self.inputs: tuple[str, ...] = tuple(inputs)
        self.outputs: tuple[str, ...] = tuple(outputs)
        self.resources: frozenset[str] = frozenset(resources)
        self.timeout_seconds = timeout_seconds

    @abc.abstractmethod
    def execute(self, inputs: dict[str, SiteTree], context: RunContext) -> ActionResult:
        """Do the action's work.

        Parameters
        ----------
        inputs:
            Payloads of the declared input artifacts, keyed by artifact id.
        context:
            The run context (run id, abort signal).

        Raises
        ------
        ActionFailure
            Or a subclass, with diagnostics attached.
        """
        ...

    # ------------------------------------------------------------------
    # Lifecycle (NOT overridable)
    # ------------------------------------------------------------------

    @final
    def run(self, context: RunContext, stage_name: str) -> ActionOutcome:
        """Execute the full action lifecycle.  **Do not override.**"""
        context.transition(self.name, stage_name, self.run_order, ActionStatus.RUNNING)
        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()
        logger.info(
            "%s [%s] running (stage=%s, run_order=%d)",
            self.name,
            self.kind.value,
            stage_name,
            self.run_order,
        )

        status = ActionStatus.SUCCEEDED
        details: dict[str, Any] = {}
        diagnostics = ""
        error_type: str | None = None
        try:
            payloads = {
                artifact_id: context.artifacts.consume(artifact_id, self.name)
                for artifact_id in self.inputs
            }
            result = self.execute(payloads, context)
            elapsed = time.monotonic() - t0
            if self.timeout_seconds is not None and elapsed > self.timeout_seconds:
                raise ActionTimeout(
                    f"{self.name} took {elapsed:.1f}s, budget is {self.timeout_seconds:.1f}s",
                    diagnostics=result.log,
                )
            if self.outputs:
                if result.output is None:
                    raise ActionFailure(
                        f"{self.name} declared output {self.outputs[0]!r} but produced none"
                    )
                context.artifacts.register(self.outputs[0], self.name, result.output)
            details = dict(result.details)
            diagnostics = result.log
        except ActionFailure as exc:
            status = ActionStatus.FAILED
            diagnostics = exc.diagnostics
            error_type = type(exc).__name__
            logger.error("%s [%s] failed: %s", self.name, self.kind.value, exc)
        except Exception as exc:
            status = ActionStatus.FAILED
            diagnostics = f"{type(exc).__name__}: {exc}"
            error_type = type(exc).__name__
            logger.exception("%s [%s] raised unexpectedly", self.name, self.kind.value)

        context.transition(self.name, stage_name, self.run_order, status)
        logger.info(
            "%s [%s] %s in %.2fs",
            self.name,
            self.kind.value,
            status.value,
            time.monotonic() - t0,
        )
        return ActionOutcome(
            action_name=self.name,
            kind=self.kind,
            stage_name=stage_name,
            run_order=self.run_order,
            status=status,
            input_artifacts=list(self.inputs),
            output_artifacts=list(self.outputs) if status == ActionStatus.SUCCEEDED else [],
            details=details,
            diagnostics=diagnostics,
            error_type=error_type,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )

    def pending_outcome(self, stage_name: str) -> ActionOutcome:
        """Outcome for an action that never started."""
        return ActionOutcome(
            action_name=self.name,
            kind=self.kind,
            stage_name=stage_name,
            run_order=self.run_order,
            input_artifacts=list(self.inputs),
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} name={self.name!r} "
            f"run_order={self.run_order}>"
        )


# ---------------------------------------------------------------------------
# Concrete kinds
# ---------------------------------------------------------------------------


class SourceAction(BaseAction):
    """Fetch the latest committed tree of a branch.

    Connection and auth failures are reported as ``SourceFetchError`` and
    not retried.
    """

    kind: ClassVar[ActionKind] = ActionKind.SOURCE

    def __init__(
        self,
        name: str,
        *,
        provider: SourceProvider,
        location: SourceLocation,
        output: str,
        run_order: int = 1,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            name,
            run_order=run_order,
            outputs=(output,),
            timeout_seconds=timeout_seconds,
        )
        self.provider = provider
        self.location = location

    def execute(self, inputs: dict[str, SiteTree], context: RunContext) -> ActionResult:
        try:
            tree = self.provider.fetch(self.location)
        except SourceFetchError:
            raise
        except (ConnectionError, PermissionError, OSError) as exc:
            raise SourceFetchError(
                f"Could not fetch {self.location.slug}: {exc}"
            ) from exc
        return ActionResult(
            output=tree,
            details={
                "branch": self.location.branch,
                "commit": tree.digest(),
                "file_count": len(tree),
            },
        )


class BuildAction(BaseAction):
    """Run the build spec inside the sandbox over the source artifact.

    A non-zero exit is a ``BuildFailure`` carrying the captured output.
    """

    kind: ClassVar[ActionKind] = ActionKind.BUILD

    def __init__(
        self,
        name: str,
        *,
        sandbox: BuildSandbox,
        spec: BuildSpec,
        input: str,
        output: str,
        run_order: int = 1,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            name,
            run_order=run_order,
            inputs=(input,),
            outputs=(output,),
            timeout_seconds=timeout_seconds if timeout_seconds is not None else spec.timeout_seconds,
        )
        self.sandbox = sandbox
        self.spec = spec

    def execute(self, inputs: dict[str, SiteTree], context: RunContext) -> ActionResult:
        tree = inputs[self.inputs[0]]
        result = self.sandbox.run(self.spec, tree, timeout=self.timeout_seconds)
        if result.timed_out:
            raise ActionTimeout(
                f"Build exceeded its {self.timeout_seconds}s budget",
                diagnostics=result.log,
            )
        if result.exit_code != 0:
            raise BuildFailure(
                f"Build exited with status {result.exit_code}",
                exit_code=result.exit_code,
                diagnostics=result.log,
            )
        output = result.output if result.output is not None else SiteTree()
        return ActionResult(
            output=output,
            details={
                "image": self.spec.image,
                "exit_code": result.exit_code,
                "file_count": len(output),
            },
            log=result.log,
        )


class DeployAction(BaseAction):
    """Upload every file of the build artifact to the storage backend.

    Existing objects at the same keys are overwritten, so deploying the same
    artifact twice leaves the same stored state.
    """

    kind: ClassVar[ActionKind] = ActionKind.DEPLOY

    def __init__(
        self,
        name: str,
        *,
        storage: StorageBackend,
        input: str,
        principal: str = "deploy-publisher",
        run_order: int = 1,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            name,
            run_order=run_order,
            inputs=(input,),
            resources=(f"storage:{storage.name}",),
            timeout_seconds=timeout_seconds,
        )
        self.storage = storage
        self.principal = principal

    def execute(self, inputs: dict[str, SiteTree], context: RunContext) -> ActionResult:
        tree = inputs[self.inputs[0]]
        written: list[str] = []
        for key, data in tree.files.items():
            try:
                self.storage.put(key, data, principal=self.principal)
            except (StorageAccessDenied, StorageQuotaExceeded, OSError) as exc:
                raise DeployFailure(
                    f"Write of {key!r} to {self.storage.name} rejected: {exc}",
                    diagnostics=(
                        f"{type(exc).__name__}: {exc} "
                        f"({len(written)} of {len(tree)} objects written)"
                    ),
                ) from exc
            written.append(key)
        return ActionResult(
            details={"bucket": self.storage.name, "keys_written": sorted(written)},
        )


class InvalidationTrigger(BaseAction):
    """Request a cache invalidation once the deploy has landed.

    Success means the CDN accepted the request; propagation is not awaited.
    Defaults to run order 2 so it follows a run-order-1 deploy.
    """

    kind: ClassVar[ActionKind] = ActionKind.INVALIDATE

    def __init__(
        self,
        name: str,
        *,
        cdn: CdnService,
        distribution_id: str,
        paths: Sequence[str] = ("/*",),
        run_order: int = 2,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(
            name,
            run_order=run_order,
            resources=(f"cdn:{distribution_id}",),
            timeout_seconds=timeout_seconds,
        )
        self.cdn = cdn
        self.distribution_id = distribution_id
        self.paths = list(paths)

    def execute(self, inputs: dict[str, SiteTree], context: RunContext) -> ActionResult:
        try:
            request_id = self.cdn.create_invalidation(
                self.distribution_id, self.paths, caller_reference=context.run_id
            )
        except (UnknownDistributionError, ValueError, ConnectionError) as exc:
            raise InvalidationFailure(
                f"Invalidation of {self.distribution_id} rejected: {exc}"
            ) from exc
        return ActionResult(
            details={
                "distribution_id": self.distribution_id,
                "paths": list(self.paths),
                "request_id": request_id,
            },
        )
