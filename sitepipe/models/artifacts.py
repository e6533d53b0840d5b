"""Artifact models (immutable once produced).

An ``Artifact`` is the handle passed between actions; the file tree it
refers to is a ``SiteTree`` held in the run's artifact table.  The
``payload_ref`` is the content address of that tree.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sitepipe.core.hasher import tree_digest


def _normalize_path(path: str) -> str:
    posix = PurePosixPath(path.replace("\\", "/").lstrip("/"))
    if any(part == ".." for part in posix.parts):
        raise ValueError(f"path escapes the tree root: {path!r}")
    return posix.as_posix()


def glob_matches(path: str, pattern: str) -> bool:
    """Return True if *path* matches a buildspec-style glob.

    Matching is done one path segment at a time: ``*`` never crosses a
    ``/``, and a ``**`` segment consumes zero or more whole segments, so
    ``**/*`` selects every file.
    """
    return _match_segments(path.split("/"), pattern.split("/"))


def _match_segments(parts: list[str], pattern: list[str]) -> bool:
    if not pattern:
        return not parts
    head, rest = pattern[0], pattern[1:]
    if head == "**":
        return any(_match_segments(parts[i:], rest) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatch.fnmatchcase(parts[0], head) and _match_segments(parts[1:], rest)


class SiteTree(BaseModel):
    """An immutable snapshot of a file tree: relative posix path -> bytes."""

    model_config = ConfigDict(frozen=True)

    files: dict[str, bytes] = {}

    @field_validator("files")
    @classmethod
    def _normalize_keys(cls, value: dict[str, bytes]) -> dict[str, bytes]:
        return {_normalize_path(k): v for k, v in sorted(value.items())}

    @classmethod
    def from_texts(cls, texts: Mapping[str, str]) -> SiteTree:
        """Build a tree from text contents (UTF-8 encoded)."""
        return cls(files={k: v.encode("utf-8") for k, v in texts.items()})

    def digest(self) -> str:
        """Content address ("sha256:<hex>") of this tree."""
        return tree_digest(self.files)

    def keys(self) -> list[str]:
        return list(self.files)

    def __len__(self) -> int:
        return len(self.files)

    def select(self, base_directory: str = "", patterns: Iterable[str] = ("**/*",)) -> SiteTree:
        """Return the subtree under *base_directory* matching any of *patterns*.

        Paths in the result are relative to *base_directory*.
        """
        base = _normalize_path(base_directory) if base_directory else ""
        patterns = list(patterns)
        prefix = f"{base}/" if base and base != "." else ""
        selected: dict[str, bytes] = {}
        for path, data in self.files.items():
            if prefix and not path.startswith(prefix):
                continue
            relative = path[len(prefix):]
            if any(glob_matches(relative, p) for p in patterns):
                selected[relative] = data
        return SiteTree(files=selected)


class Artifact(BaseModel):
    """A named, immutable handle to an action's output.

    Exactly one producer; zero or more consumers.
    """

    model_config = ConfigDict(frozen=True)

    artifact_id: str
    produced_by: str  # action name
    payload_ref: str  # "sha256:<hex>" of the SiteTree
    file_count: int = 0
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
