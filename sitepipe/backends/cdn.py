"""In-memory CDN service — distributions, edge caches, invalidations."""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Iterable
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from sitepipe.backends.errors import UnknownDistributionError
from sitepipe.backends.protocols import StorageBackend
from sitepipe.edge.distribution import DistributionFront
from sitepipe.models.distribution import DistributionConfig, EdgeRequest, EdgeResponse

logger = logging.getLogger(__name__)


class Invalidation(BaseModel):
    """An accepted invalidation request."""

    model_config = ConfigDict(frozen=True)

    request_id: str
    distribution_id: str
    paths: list[str]
    caller_reference: str = ""
    status: str = "InProgress"
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class InMemoryCdn:
    """CDN capability backed by ``DistributionFront`` objects.

    Parameters
    ----------
    origins:
        Storage backends distributions may use as origin, by bucket name.
    """

    def __init__(self, origins: Iterable[StorageBackend] = ()) -> None:
        self._origins: dict[str, StorageBackend] = {o.name: o for o in origins}
        self._fronts: dict[str, DistributionFront] = {}
        self._invalidations: dict[str, list[Invalidation]] = {}
        self._lock = threading.Lock()

    def add_origin(self, origin: StorageBackend) -> None:
        with self._lock:
            self._origins[origin.name] = origin

    # ------------------------------------------------------------------
    # Distributions
    # ------------------------------------------------------------------

    def create_distribution(self, config: DistributionConfig) -> str:
        with self._lock:
            origin = self._origins.get(config.origin.bucket_name)
            if origin is None:
                raise ValueError(f"Unknown origin bucket {config.origin.bucket_name!r}")
            distribution_id = f"E{secrets.token_hex(7).upper()[:13]}"
            front = DistributionFront(
                config.model_copy(update={"distribution_id": distribution_id}), origin
            )
            self._fronts[distribution_id] = front
            self._invalidations[distribution_id] = []
        logger.info(
            "Created distribution %s for %s",
            distribution_id,
            ", ".join(config.domain_names),
        )
        return distribution_id

    def distribution(self, distribution_id: str) -> DistributionFront:
        with self._lock:
            try:
                return self._fronts[distribution_id]
            except KeyError:
                raise UnknownDistributionError(
                    f"No distribution {distribution_id!r}"
                ) from None

    def request(self, distribution_id: str, request: EdgeRequest) -> EdgeResponse:
        """Serve a viewer request through a distribution."""
        return self.distribution(distribution_id).handle(request)

    # ------------------------------------------------------------------
    # Invalidations
    # ------------------------------------------------------------------

    def create_invalidation(
        self, distribution_id: str, paths: list[str], *, caller_reference: str = ""
    ) -> str:
        """Accept an invalidation and purge matching cached objects.

        Repeating a request with the same caller reference and paths returns
        the original request id.
        """
        front = self.distribution(distribution_id)
        if not paths or any(not p.startswith("/") for p in paths):
            raise ValueError(f"Invalidation paths must be non-empty and absolute: {paths!r}")

        with self._lock:
            if caller_reference:
                for existing in self._invalidations[distribution_id]:
                    if existing.caller_reference == caller_reference and existing.paths == list(paths):
                        return existing.request_id
            invalidation = Invalidation(
                request_id=f"I{secrets.token_hex(7).upper()[:13]}",
                distribution_id=distribution_id,
                paths=list(paths),
                caller_reference=caller_reference,
            )
            self._invalidations[distribution_id].append(invalidation)

        purged = front.purge(paths)
        logger.info(
            "Invalidation %s accepted for %s (%s; %d cached objects purged)",
            invalidation.request_id,
            distribution_id,
            ", ".join(paths),
            purged,
        )
        return invalidation.request_id

    def invalidations(self, distribution_id: str) -> list[Invalidation]:
        self.distribution(distribution_id)
        with self._lock:
            return list(self._invalidations[distribution_id])
