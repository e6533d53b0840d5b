"""Source collaborators: local checkouts and in-memory branches."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from sitepipe.backends.protocols import SourceLocation
from sitepipe.core.errors import SourceFetchError
from sitepipe.models.artifacts import SiteTree

logger = logging.getLogger(__name__)

_SKIP_DIRS = {".git", ".hg", ".svn"}


def read_tree(root: Path) -> SiteTree:
    """Snapshot every file under *root* (VCS metadata excluded)."""
    files: dict[str, bytes] = {}
    for path in sorted(root.rglob("*")):
        relative = path.relative_to(root)
        if any(part in _SKIP_DIRS for part in relative.parts):
            continue
        if path.is_file():
            files[relative.as_posix()] = path.read_bytes()
    return SiteTree(files=files)


class DirectorySource:
    """Serves branches from checkouts laid out as ``<root>/<owner>/<repo>/<branch>``.

    Parameters
    ----------
    root:
        Directory holding the checkouts.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def checkout_path(self, location: SourceLocation) -> Path:
        return self.root / location.owner / location.repo / location.branch

    def fetch(self, location: SourceLocation) -> SiteTree:
        path = self.checkout_path(location)
        if not path.is_dir():
            raise SourceFetchError(
                f"No checkout for {location.slug}",
                diagnostics=f"expected a directory at {path}",
            )
        tree = read_tree(path)
        logger.info("Fetched %s from %s (%d files)", location.slug, path, len(tree))
        if location.subdirectory:
            return tree.select(location.subdirectory)
        return tree


class InMemorySource:
    """Branches held in memory, keyed by branch name."""

    def __init__(self, branches: Mapping[str, SiteTree] | None = None) -> None:
        self._branches: dict[str, SiteTree] = dict(branches or {})

    def commit(self, branch: str, tree: SiteTree) -> None:
        """Make *tree* the latest commit of *branch*."""
        self._branches[branch] = tree

    def fetch(self, location: SourceLocation) -> SiteTree:
        try:
            tree = self._branches[location.branch]
        except KeyError:
            raise SourceFetchError(f"Unknown branch {location.slug}") from None
        if location.subdirectory:
            return tree.select(location.subdirectory)
        return tree
