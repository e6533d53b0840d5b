"""Policy-guarded object storage backends.

Every read and write is evaluated against the attached ``AccessPolicy``;
with no policy attached the bucket denies everything.  Two backends share
that logic: ``InMemoryBucket`` and ``DirectoryBucket`` (objects as files
under a root directory, used by the CLI to publish a site locally).
"""

from __future__ import annotations

import abc
import logging
import mimetypes
import os
import tempfile
import threading
from pathlib import Path

from sitepipe.backends.errors import StorageAccessDenied, StorageQuotaExceeded
from sitepipe.backends.protocols import StorageResponse
from sitepipe.models.access import (
    GET_OBJECT,
    LIST_BUCKET,
    PUBLIC_PRINCIPAL,
    PUT_OBJECT,
    AccessPolicy,
    StorageRequest,
)

logger = logging.getLogger(__name__)


def guess_content_type(key: str) -> str:
    content_type, _ = mimetypes.guess_type(key)
    return content_type or "application/octet-stream"


class GuardedBucket(abc.ABC):
    """Storage semantics shared by all buckets.

    Parameters
    ----------
    name:
        Bucket name (the site's domain name by convention).
    index_document:
        Default document served at the site root.
    error_document:
        Document served for missing objects.
    max_objects:
        Optional object quota; writes of new keys beyond it are refused.
    """

    def __init__(
        self,
        name: str,
        *,
        index_document: str = "index.html",
        error_document: str = "404.html",
        max_objects: int | None = None,
    ) -> None:
        self.name = name
        self.index_document = index_document
        self.error_document = error_document
        self.max_objects = max_objects
        self._policy: AccessPolicy | None = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    def attach_policy(self, policy: AccessPolicy) -> None:
        if policy.bucket_name != self.name:
            raise ValueError(
                f"Policy for bucket {policy.bucket_name!r} cannot be attached to {self.name!r}"
            )
        self._policy = policy
        logger.info("Bucket %s: access policy attached (%d statements)", self.name, len(policy.statements))

    @property
    def policy(self) -> AccessPolicy | None:
        return self._policy

    def authorizes(self, request: StorageRequest) -> bool:
        return self._policy is not None and self._policy.evaluate(request)

    # ------------------------------------------------------------------
    # Capability interface
    # ------------------------------------------------------------------

    def put(self, key: str, data: bytes, *, principal: str) -> None:
        """Write *data* at *key*, overwriting any existing object."""
        request = StorageRequest(action=PUT_OBJECT, key=key, principal=principal)
        if not self.authorizes(request):
            raise StorageAccessDenied(f"{principal!r} may not write {key!r} to {self.name}")
        with self._lock:
            if (
                self.max_objects is not None
                and key not in self._keys()
                and len(self._keys()) >= self.max_objects
            ):
                raise StorageQuotaExceeded(
                    f"Bucket {self.name} is full ({self.max_objects} objects)"
                )
            self._write(key, data)

    def get(
        self,
        key: str,
        *,
        principal: str = PUBLIC_PRINCIPAL,
        headers: dict[str, str] | None = None,
    ) -> StorageResponse:
        """Read *key*: 403 when the policy denies, 404 when missing."""
        request = StorageRequest(
            action=GET_OBJECT, key=key, principal=principal, headers=headers or {}
        )
        if not self.authorizes(request):
            return StorageResponse(status=403, body=b"AccessDenied")
        with self._lock:
            data = self._read(key)
        if data is None:
            return StorageResponse(status=404, body=b"NoSuchKey")
        return StorageResponse(status=200, body=data, content_type=guess_content_type(key))

    def list_public(self) -> list[str]:
        """Keys an anonymous caller without any headers can list and read."""
        anonymous_list = StorageRequest(action=LIST_BUCKET, principal=PUBLIC_PRINCIPAL)
        if not self.authorizes(anonymous_list):
            return []
        with self._lock:
            keys = sorted(self._keys())
        return [
            k for k in keys
            if self.authorizes(StorageRequest(action=GET_OBJECT, key=k, principal=PUBLIC_PRINCIPAL))
        ]

    # ------------------------------------------------------------------
    # Administrative views (bypass the policy)
    # ------------------------------------------------------------------

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._keys())

    def snapshot(self) -> dict[str, bytes]:
        """Full stored state, key -> bytes."""
        with self._lock:
            return {k: self._read(k) or b"" for k in sorted(self._keys())}

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    @abc.abstractmethod
    def _write(self, key: str, data: bytes) -> None:
        ...

    @abc.abstractmethod
    def _read(self, key: str) -> bytes | None:
        ...

    @abc.abstractmethod
    def _keys(self) -> set[str]:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class InMemoryBucket(GuardedBucket):
    """Bucket held in a dict."""

    def __init__(self, name: str, **kwargs) -> None:
        super().__init__(name, **kwargs)
        self._objects: dict[str, bytes] = {}

    def _write(self, key: str, data: bytes) -> None:
        self._objects[key] = bytes(data)

    def _read(self, key: str) -> bytes | None:
        return self._objects.get(key)

    def _keys(self) -> set[str]:
        return set(self._objects)


class DirectoryBucket(GuardedBucket):
    """Bucket whose objects are files under ``root``."""

    def __init__(self, name: str, root: Path, **kwargs) -> None:
        super().__init__(name, **kwargs)
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise StorageAccessDenied(f"Key {key!r} escapes bucket root")
        return path

    def _write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _read(self, key: str) -> bytes | None:
        try:
            path = self._path(key)
        except StorageAccessDenied:
            return None
        return path.read_bytes() if path.is_file() else None

    def _keys(self) -> set[str]:
        return {
            p.relative_to(self.root).as_posix()
            for p in self.root.rglob("*")
            if p.is_file() and not p.name.startswith(".upload-")
        }
