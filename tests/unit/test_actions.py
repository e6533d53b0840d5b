"""Tests for the action lifecycle and the four concrete action kinds."""

from __future__ import annotations

import time
from typing import ClassVar

import pytest

from sitepipe.backends.cdn import InMemoryCdn
from sitepipe.backends.protocols import BuildResult, SourceLocation
from sitepipe.backends.source import InMemorySource
from sitepipe.backends.storage import InMemoryBucket
from sitepipe.core.actions import (
    ActionResult,
    BaseAction,
    BuildAction,
    DeployAction,
    InvalidationTrigger,
    SourceAction,
)
from sitepipe.core.context import RunContext
from sitepipe.core.errors import InvalidTransitionError, OrderingViolation
from sitepipe.edge.access_guard import OriginAccessGuard
from sitepipe.models.actions import ActionKind, ActionStatus
from sitepipe.models.artifacts import SiteTree
from sitepipe.models.config import BuildSpec


class _Crashing(BaseAction):
    kind: ClassVar[ActionKind] = ActionKind.BUILD

    def execute(self, inputs, context):
        raise ZeroDivisionError("division by zero")


class _Slow(BaseAction):
    kind: ClassVar[ActionKind] = ActionKind.BUILD

    def execute(self, inputs, context):
        time.sleep(0.05)
        return ActionResult(log="slow log")


class _FlakySource:
    def fetch(self, location: SourceLocation) -> SiteTree:
        raise ConnectionError("connection reset by peer")


def _location(branch: str = "main") -> SourceLocation:
    return SourceLocation(owner="example", repo="site", branch=branch)


class TestBaseActionConstruction:
    def test_run_order_below_one_rejected(self):
        with pytest.raises(OrderingViolation):
            _Crashing("x", run_order=0)

    def test_at_most_one_input_and_output(self):
        with pytest.raises(ValueError):
            _Crashing("x", inputs=("a", "b"))
        with pytest.raises(ValueError):
            _Crashing("x", outputs=("a", "b"))


class TestLifecycle:
    def test_unexpected_exception_becomes_failed_outcome(self, run_context: RunContext):
        outcome = _Crashing("Crash").run(run_context, "Build")
        assert outcome.status == ActionStatus.FAILED
        assert outcome.error_type == "ZeroDivisionError"
        assert "division by zero" in outcome.diagnostics

    def test_transitions_are_recorded(self, run_context: RunContext):
        _Crashing("Crash").run(run_context, "Build")
        transitions = [e.transition for e in run_context.events]
        assert transitions == ["pending->running", "running->failed"]

    def test_terminal_action_cannot_rerun_in_same_context(self, run_context: RunContext):
        _Crashing("Crash").run(run_context, "Build")
        with pytest.raises(InvalidTransitionError):
            _Crashing("Crash").run(run_context, "Build")

    def test_timeout_overrun_reported(self, run_context: RunContext):
        outcome = _Slow("Slow", timeout_seconds=0.001).run(run_context, "Build")
        assert outcome.status == ActionStatus.FAILED
        assert outcome.error_type == "ActionTimeout"
        assert outcome.diagnostics == "slow log"

    def test_missing_input_fails(self, run_context: RunContext):
        action = DeployAction("Deploy", storage=InMemoryBucket("b"), input="absent")
        outcome = action.run(run_context, "Deploy")
        assert outcome.status == ActionStatus.FAILED
        assert outcome.error_type == "ArtifactNotFoundError"


class TestSourceAction:
    def test_fetch_produces_artifact(self, run_context: RunContext, site_tree: SiteTree):
        action = SourceAction(
            "Src", provider=InMemorySource({"main": site_tree}), location=_location(), output="src"
        )
        outcome = action.run(run_context, "Source")
        assert outcome.status == ActionStatus.SUCCEEDED
        assert outcome.output_artifacts == ["src"]
        assert outcome.details["commit"] == site_tree.digest()
        assert run_context.artifacts.get("src").produced_by == "Src"

    def test_unknown_branch(self, run_context: RunContext, site_tree: SiteTree):
        action = SourceAction(
            "Src",
            provider=InMemorySource({"main": site_tree}),
            location=_location("feature"),
            output="src",
        )
        outcome = action.run(run_context, "Source")
        assert outcome.status == ActionStatus.FAILED
        assert outcome.error_type == "SourceFetchError"
        assert "src" not in run_context.artifacts

    def test_connection_error_wrapped(self, run_context: RunContext):
        action = SourceAction("Src", provider=_FlakySource(), location=_location(), output="src")
        outcome = action.run(run_context, "Source")
        assert outcome.error_type == "SourceFetchError"
        assert "connection reset" in outcome.diagnostics


class TestBuildAction:
    def _seed(self, context: RunContext, tree: SiteTree) -> None:
        context.artifacts.register("src", "Src", tree)

    def test_success_selects_outputs(self, run_context: RunContext, site_tree: SiteTree, sandbox_factory):
        self._seed(run_context, site_tree)
        action = BuildAction(
            "Build",
            sandbox=sandbox_factory(),
            spec=BuildSpec(base_directory="website"),
            input="src",
            output="out",
        )
        outcome = action.run(run_context, "Build")
        assert outcome.status == ActionStatus.SUCCEEDED
        payload = run_context.artifacts.consume("out", "test")
        assert sorted(payload.keys()) == ["404.html", "assets/app.js", "index.html"]

    def test_nonzero_exit_is_build_failure(self, run_context: RunContext, site_tree: SiteTree, sandbox_factory):
        self._seed(run_context, site_tree)
        sandbox = sandbox_factory(BuildResult(exit_code=2, stderr="npm ERR! missing script"))
        action = BuildAction("Build", sandbox=sandbox, spec=BuildSpec(), input="src", output="out")
        outcome = action.run(run_context, "Build")
        assert outcome.status == ActionStatus.FAILED
        assert outcome.error_type == "BuildFailure"
        assert "npm ERR!" in outcome.diagnostics
        assert "out" not in run_context.artifacts

    def test_sandbox_timeout(self, run_context: RunContext, site_tree: SiteTree, sandbox_factory):
        self._seed(run_context, site_tree)
        sandbox = sandbox_factory(BuildResult(exit_code=-1, timed_out=True, stdout="compiling"))
        action = BuildAction(
            "Build",
            sandbox=sandbox,
            spec=BuildSpec(timeout_seconds=5),
            input="src",
            output="out",
        )
        outcome = action.run(run_context, "Build")
        assert outcome.error_type == "ActionTimeout"
        assert sandbox.calls[0][2] == 5

    def test_build_spec_timeout_is_default_budget(self, sandbox_factory):
        action = BuildAction(
            "Build",
            sandbox=sandbox_factory(),
            spec=BuildSpec(timeout_seconds=30),
            input="src",
            output="out",
        )
        assert action.timeout_seconds == 30


class TestDeployAction:
    def _bucket(self) -> InMemoryBucket:
        bucket = InMemoryBucket("example.com")
        guard = OriginAccessGuard("example.com")
        guard.provision()
        bucket.attach_policy(guard.access_policy())
        return bucket

    def test_writes_every_file(self, run_context: RunContext):
        bucket = self._bucket()
        run_context.artifacts.register(
            "out", "Build", SiteTree.from_texts({"index.html": "a", "404.html": "b"})
        )
        outcome = DeployAction("Deploy", storage=bucket, input="out").run(run_context, "Deploy")
        assert outcome.status == ActionStatus.SUCCEEDED
        assert outcome.details["keys_written"] == ["404.html", "index.html"]
        assert bucket.keys() == ["404.html", "index.html"]

    def test_wrong_principal_denied(self, run_context: RunContext):
        bucket = self._bucket()
        run_context.artifacts.register("out", "Build", SiteTree.from_texts({"index.html": "a"}))
        action = DeployAction("Deploy", storage=bucket, input="out", principal="intruder")
        outcome = action.run(run_context, "Deploy")
        assert outcome.status == ActionStatus.FAILED
        assert outcome.error_type == "DeployFailure"
        assert bucket.keys() == []

    def test_declares_storage_resource(self):
        action = DeployAction("Deploy", storage=InMemoryBucket("b"), input="out")
        assert action.resources == frozenset({"storage:b"})


class TestInvalidationTrigger:
    def test_request_accepted(self, run_context: RunContext, deployment):
        action = InvalidationTrigger(
            "Invalidate", cdn=deployment.cdn, distribution_id=deployment.distribution_id
        )
        outcome = action.run(run_context, "Deploy")
        assert outcome.status == ActionStatus.SUCCEEDED
        assert outcome.details["request_id"].startswith("I")
        assert outcome.details["paths"] == ["/*"]

    def test_unknown_distribution(self, run_context: RunContext):
        action = InvalidationTrigger("Invalidate", cdn=InMemoryCdn(), distribution_id="E404")
        outcome = action.run(run_context, "Deploy")
        assert outcome.status == ActionStatus.FAILED
        assert outcome.error_type == "InvalidationFailure"

    def test_defaults_to_run_order_two(self):
        action = InvalidationTrigger("Invalidate", cdn=InMemoryCdn(), distribution_id="E1")
        assert action.run_order == 2
