"""Per-site operator configuration.

These values are external preconditions: account, certificate and
connection references are assumed valid and pre-provisioned.  Only
presence is checked.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class SourceRepository(BaseModel):
    """Coordinates of the source repository."""

    model_config = ConfigDict(frozen=True)

    connection_ref: str = ""
    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    root_directory: str = ""


class BuildSpec(BaseModel):
    """What the build sandbox runs and which outputs it keeps."""

    model_config = ConfigDict(frozen=True)

    image: str = "standard-5.0"
    commands: list[str] = []
    files: list[str] = ["**/*"]
    base_directory: str = ""
    timeout_seconds: float | None = Field(default=None, gt=0)


class SiteConfig(BaseModel):
    """Static configuration for one site environment."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    domain_name: str = Field(min_length=1)
    branch: str = Field(min_length=1)
    certificate_ref: str = ""
    account: str = ""
    region: str = ""
    source: SourceRepository
    build: BuildSpec | None = None
    invalidation_paths: list[str] = ["/*"]
    publisher_principal: str = "deploy-publisher"

    @property
    def bucket_name(self) -> str:
        return self.domain_name

    def effective_build_spec(self) -> BuildSpec:
        """The build spec, defaulting the base directory to the repo root dir."""
        if self.build is not None:
            return self.build
        return BuildSpec(base_directory=self.source.root_directory)
