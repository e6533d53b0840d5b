"""Protocols for the external collaborators and the records they exchange.

Any object with matching methods satisfies a protocol; the local
implementations in this package are defaults for development, tests and
the CLI.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from sitepipe.models.access import AccessPolicy, PUBLIC_PRINCIPAL
from sitepipe.models.artifacts import SiteTree
from sitepipe.models.config import BuildSpec
from sitepipe.models.distribution import DistributionConfig


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class SourceLocation(BaseModel):
    """Where the source collaborator should fetch a branch from."""

    model_config = ConfigDict(frozen=True)

    connection_ref: str = ""
    owner: str
    repo: str
    branch: str
    subdirectory: str = ""

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}@{self.branch}"


class BuildResult(BaseModel):
    """What the build sandbox reports back."""

    model_config = ConfigDict(frozen=True)

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    output: SiteTree | None = None
    timed_out: bool = False

    @property
    def log(self) -> str:
        """stdout followed by stderr, as a single diagnostic text."""
        parts = [p for p in (self.stdout.strip(), self.stderr.strip()) if p]
        return "\n".join(parts)


class StorageResponse(BaseModel):
    """Response of the storage backend to a read."""

    model_config = ConfigDict(frozen=True)

    status: int
    body: bytes = b""
    content_type: str = ""


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class SourceProvider(Protocol):
    """Returns the latest committed tree for a branch.

    Raises ``SourceFetchError`` (or ``ConnectionError`` / ``PermissionError``)
    on connection or auth failure.
    """

    def fetch(self, location: SourceLocation) -> SiteTree:
        ...


@runtime_checkable
class BuildSandbox(Protocol):
    """Turns a source tree into a built tree."""

    def run(
        self, spec: BuildSpec, tree: SiteTree, *, timeout: float | None = None
    ) -> BuildResult:
        ...


@runtime_checkable
class StorageBackend(Protocol):
    """Object storage with a resource access policy."""

    name: str
    index_document: str
    error_document: str

    def attach_policy(self, policy: AccessPolicy) -> None:
        ...

    def put(self, key: str, data: bytes, *, principal: str) -> None:
        ...

    def get(
        self,
        key: str,
        *,
        principal: str = PUBLIC_PRINCIPAL,
        headers: dict[str, str] | None = None,
    ) -> StorageResponse:
        ...

    def list_public(self) -> list[str]:
        ...


@runtime_checkable
class CdnService(Protocol):
    """Content-delivery service."""

    def create_distribution(self, config: DistributionConfig) -> str:
        ...

    def create_invalidation(
        self, distribution_id: str, paths: list[str], *, caller_reference: str = ""
    ) -> str:
        ...
