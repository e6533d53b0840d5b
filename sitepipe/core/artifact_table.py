"""Per-run artifact table — one producer per artifact, read-only thereafter.

The table lives exactly as long as the run that filled it.  When the same
Pipeline starts its next run, the previous table is superseded and its
payloads are dropped.
"""

from __future__ import annotations

import logging
import threading

from sitepipe.models.artifacts import Artifact, SiteTree

logger = logging.getLogger(__name__)


class ArtifactNotFoundError(KeyError):
    """Raised when an artifact id has not been produced in this run."""


class DuplicateArtifactError(RuntimeError):
    """Raised when a second producer tries to register an artifact id."""


class ArtifactSupersededError(RuntimeError):
    """Raised when a superseded table is read or written."""


class ArtifactTable:
    """Thread-safe table of artifacts produced during one run.

    Parameters
    ----------
    run_id:
        The run this table belongs to.
    """

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        self._lock = threading.Lock()
        self._artifacts: dict[str, Artifact] = {}
        self._payloads: dict[str, SiteTree] = {}
        self._consumers: dict[str, list[str]] = {}
        self._superseded = False

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def register(self, artifact_id: str, produced_by: str, payload: SiteTree) -> Artifact:
        """Record *payload* as the sole content of *artifact_id*."""
        with self._lock:
            self._check_live()
            if artifact_id in self._artifacts:
                existing = self._artifacts[artifact_id]
                raise DuplicateArtifactError(
                    f"Artifact {artifact_id!r} already produced by "
                    f"{existing.produced_by!r}; {produced_by!r} cannot overwrite it"
                )
            artifact = Artifact(
                artifact_id=artifact_id,
                produced_by=produced_by,
                payload_ref=payload.digest(),
                file_count=len(payload),
            )
            self._artifacts[artifact_id] = artifact
            self._payloads[artifact_id] = payload
            self._consumers.setdefault(artifact_id, [])
        logger.debug(
            "run %s: artifact %s produced by %s (%d files, %s)",
            self.run_id,
            artifact_id,
            produced_by,
            artifact.file_count,
            artifact.payload_ref[:19],
        )
        return artifact

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, artifact_id: str) -> Artifact:
        with self._lock:
            self._check_live()
            try:
                return self._artifacts[artifact_id]
            except KeyError:
                raise ArtifactNotFoundError(
                    f"Artifact {artifact_id!r} has not been produced in run {self.run_id}"
                ) from None

    def consume(self, artifact_id: str, consumer: str) -> SiteTree:
        """Return the payload of *artifact_id* and record *consumer*."""
        with self._lock:
            self._check_live()
            if artifact_id not in self._payloads:
                raise ArtifactNotFoundError(
                    f"Artifact {artifact_id!r} has not been produced in run {self.run_id}"
                )
            self._consumers[artifact_id].append(consumer)
            return self._payloads[artifact_id]

    def consumers(self, artifact_id: str) -> list[str]:
        with self._lock:
            return list(self._consumers.get(artifact_id, []))

    def __contains__(self, artifact_id: object) -> bool:
        with self._lock:
            return artifact_id in self._artifacts

    def artifacts(self) -> list[Artifact]:
        """All artifacts produced so far, in production order."""
        with self._lock:
            return list(self._artifacts.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def superseded(self) -> bool:
        return self._superseded

    def supersede(self) -> None:
        """Drop all payloads; the table can no longer be used."""
        with self._lock:
            dropped = len(self._payloads)
            self._payloads.clear()
            self._superseded = True
        logger.debug("run %s: artifact table superseded (%d payloads dropped)", self.run_id, dropped)

    def _check_live(self) -> None:
        if self._superseded:
            raise ArtifactSupersededError(
                f"Artifact table for run {self.run_id} has been superseded"
            )
