"""Canonical hashing helpers for content addressing."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce deterministic canonical JSON bytes (sorted keys, compact separators)."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def content_address(obj: Any) -> str:
    """Content-address a JSON-serializable object.

    Returns "sha256:<hex>".
    """
    return f"sha256:{sha256_hex(canonical_json_bytes(obj))}"


def tree_digest(files: Mapping[str, bytes]) -> str:
    """Content address of a file tree.

    The manifest maps each relative path to the SHA-256 of its bytes, so
    two trees with the same paths and contents always share a digest.
    """
    manifest = {path: sha256_hex(data) for path, data in files.items()}
    return content_address(manifest)
