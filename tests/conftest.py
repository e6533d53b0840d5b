"""Shared test fixtures for sitepipe."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any, ClassVar

import pytest

from sitepipe.backends.cdn import InMemoryCdn
from sitepipe.backends.protocols import BuildResult
from sitepipe.backends.source import InMemorySource
from sitepipe.backends.storage import InMemoryBucket
from sitepipe.core.actions import ActionResult, BaseAction
from sitepipe.core.context import RunContext
from sitepipe.core.errors import ActionFailure
from sitepipe.models.actions import ActionKind
from sitepipe.models.artifacts import SiteTree
from sitepipe.models.config import BuildSpec, SiteConfig, SourceRepository
from sitepipe.website import WebsiteDeployment, provision_website


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class EventLog:
    """Thread-safe record of (event, action name) pairs in arrival order."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.entries: list[tuple[str, str]] = []

    def add(self, event: str, name: str) -> None:
        with self._lock:
            self.entries.append((event, name))

    def index(self, event: str, name: str) -> int:
        return self.entries.index((event, name))


class ScriptedAction(BaseAction):
    """Action that records start/end, optionally waits, sleeps or fails."""

    kind: ClassVar[ActionKind] = ActionKind.BUILD

    def __init__(
        self,
        name: str,
        log: EventLog,
        *,
        fail: bool = False,
        delay: float = 0.0,
        barrier: threading.Barrier | None = None,
        produce: SiteTree | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, **kwargs)
        self.log = log
        self.fail = fail
        self.delay = delay
        self.barrier = barrier
        self.produce = produce
        self.seen_inputs: dict[str, SiteTree] = {}

    def execute(self, inputs: dict[str, SiteTree], context: RunContext) -> ActionResult:
        self.log.add("start", self.name)
        self.seen_inputs = dict(inputs)
        if self.barrier is not None:
            self.barrier.wait(timeout=5)
        if self.delay:
            time.sleep(self.delay)
        self.log.add("end", self.name)
        if self.fail:
            raise ActionFailure(f"{self.name} failed", diagnostics=f"{self.name}: scripted failure")
        output = None
        if self.outputs:
            output = self.produce or SiteTree.from_texts({f"{self.name}.txt": self.name})
        return ActionResult(output=output)


class SelectingSandbox:
    """Build sandbox that skips commands and applies the artifact selection."""

    def __init__(self, result: BuildResult | None = None) -> None:
        self.result = result
        self.calls: list[tuple[BuildSpec, SiteTree, float | None]] = []

    def run(self, spec: BuildSpec, tree: SiteTree, *, timeout: float | None = None) -> BuildResult:
        self.calls.append((spec, tree, timeout))
        if self.result is not None:
            return self.result
        return BuildResult(
            exit_code=0,
            stdout="build ok",
            output=tree.select(spec.base_directory, spec.files),
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.fixture
def make_action(event_log: EventLog) -> Callable[..., ScriptedAction]:
    """Factory fixture: build a ScriptedAction sharing the test's event log."""

    def _factory(name: str, **kwargs: Any) -> ScriptedAction:
        return ScriptedAction(name, event_log, **kwargs)

    return _factory


@pytest.fixture
def site_tree() -> SiteTree:
    """A repository snapshot with the site under ``website/``."""
    return SiteTree.from_texts({
        "README.md": "# repo\n",
        "website/index.html": "<h1>home</h1>",
        "website/404.html": "<h1>not found</h1>",
        "website/assets/app.js": "console.log('app');",
    })


@pytest.fixture
def site_config() -> SiteConfig:
    return SiteConfig(
        name="StaticWebsiteTest",
        domain_name="test.example.com",
        branch="main",
        source=SourceRepository(owner="example", repo="static-site", root_directory="website"),
    )


@pytest.fixture
def bucket(site_config: SiteConfig) -> InMemoryBucket:
    return InMemoryBucket(site_config.bucket_name)


@pytest.fixture
def cdn(bucket: InMemoryBucket) -> InMemoryCdn:
    return InMemoryCdn([bucket])


@pytest.fixture
def source(site_tree: SiteTree) -> InMemorySource:
    return InMemorySource({"main": site_tree})


@pytest.fixture
def deployment(
    site_config: SiteConfig,
    source: InMemorySource,
    bucket: InMemoryBucket,
    cdn: InMemoryCdn,
) -> WebsiteDeployment:
    """A fully provisioned site using the selecting sandbox."""
    return provision_website(
        site_config,
        source=source,
        sandbox=SelectingSandbox(),
        storage=bucket,
        cdn=cdn,
    )


@pytest.fixture
def run_context() -> RunContext:
    return RunContext("run-test-001")


@pytest.fixture
def sandbox_factory() -> type[SelectingSandbox]:
    """The selecting sandbox class, for tests that script a build result."""
    return SelectingSandbox
