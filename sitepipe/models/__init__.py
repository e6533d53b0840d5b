"""sitepipe data models — all Pydantic v2, all frozen (immutable)."""

from sitepipe.models.access import (
    AccessPolicy,
    AccessToken,
    PolicyEffect,
    PolicyStatement,
    StorageRequest,
)
from sitepipe.models.actions import (
    VALID_TRANSITIONS,
    ActionKind,
    ActionOutcome,
    ActionStatus,
    RunEvent,
)
from sitepipe.models.artifacts import Artifact, SiteTree
from sitepipe.models.config import BuildSpec, SiteConfig, SourceRepository
from sitepipe.models.distribution import (
    DistributionConfig,
    ErrorResponse,
    OriginConfig,
    SecurityPolicyProtocol,
    ViewerProtocolPolicy,
)
from sitepipe.models.pipeline import PipelineStatus, RunResult

__all__ = [
    # artifacts
    "Artifact",
    "SiteTree",
    # actions
    "ActionKind",
    "ActionStatus",
    "ActionOutcome",
    "RunEvent",
    "VALID_TRANSITIONS",
    # pipeline
    "PipelineStatus",
    "RunResult",
    # access
    "AccessToken",
    "AccessPolicy",
    "PolicyEffect",
    "PolicyStatement",
    "StorageRequest",
    # distribution
    "DistributionConfig",
    "ErrorResponse",
    "OriginConfig",
    "SecurityPolicyProtocol",
    "ViewerProtocolPolicy",
    # config
    "BuildSpec",
    "SiteConfig",
    "SourceRepository",
]
