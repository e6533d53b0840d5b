"""Origin access models — token, policy statements, storage requests.

The access token is an opaque capability value compared by equality.  It
carries no cryptographic freshness guarantee: there is no rotation and no
expiry, so anyone who observes the header can replay it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

PUBLIC_PRINCIPAL = "*"

# Storage actions understood by the policy evaluator.
GET_OBJECT = "storage:GetObject"
PUT_OBJECT = "storage:PutObject"
LIST_BUCKET = "storage:ListBucket"


class AccessToken(BaseModel):
    """Opaque origin-access identity value."""

    model_config = ConfigDict(frozen=True)

    value: str = Field(min_length=1)
    comment: str = ""
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __str__(self) -> str:
        return self.value


class PolicyEffect(str, Enum):
    ALLOW = "Allow"
    DENY = "Deny"


class StorageRequest(BaseModel):
    """A request arriving at the storage backend."""

    model_config = ConfigDict(frozen=True)

    action: str
    key: str = ""
    principal: str = PUBLIC_PRINCIPAL
    headers: dict[str, str] = {}

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class PolicyStatement(BaseModel):
    """One statement of a storage access policy.

    ``conditions`` uses the ``{"StringEquals": {"header:<Name>": value}}``
    shape; every condition must hold for the statement to match.
    """

    model_config = ConfigDict(frozen=True)

    sid: str
    effect: PolicyEffect = PolicyEffect.ALLOW
    actions: tuple[str, ...]
    principals: tuple[str, ...]
    resources: tuple[str, ...] = ("*",)
    conditions: dict[str, dict[str, str]] = {}

    def matches(self, request: StorageRequest) -> bool:
        if request.action not in self.actions:
            return False
        if PUBLIC_PRINCIPAL not in self.principals and request.principal not in self.principals:
            return False
        if not self._resource_matches(request.key):
            return False
        return self._conditions_hold(request)

    def _resource_matches(self, key: str) -> bool:
        for resource in self.resources:
            if resource == "*" or resource == key:
                return True
            if resource.endswith("*") and key.startswith(resource[:-1]):
                return True
        return False

    def _conditions_hold(self, request: StorageRequest) -> bool:
        for operator, clauses in self.conditions.items():
            if operator != "StringEquals":
                # Unknown operators never hold.
                return False
            for condition_key, expected in clauses.items():
                if not condition_key.startswith("header:"):
                    return False
                actual = request.header(condition_key.removeprefix("header:"))
                if actual is None or actual != expected:
                    return False
        return True


class AccessPolicy(BaseModel):
    """Resource policy attached to a storage backend.

    Evaluation is default-deny; an explicit Deny wins over any Allow.
    """

    model_config = ConfigDict(frozen=True)

    bucket_name: str
    statements: tuple[PolicyStatement, ...] = ()

    def evaluate(self, request: StorageRequest) -> bool:
        allowed = False
        for statement in self.statements:
            if not statement.matches(request):
                continue
            if statement.effect == PolicyEffect.DENY:
                return False
            allowed = True
        return allowed
