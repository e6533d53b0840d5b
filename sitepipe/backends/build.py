"""Subprocess build sandbox.

Materialises the source tree in a temporary directory, runs each build
command through the shell with the remaining wall-clock budget, and returns
only the files under the build spec's base directory that match its globs.
Output is captured, never streamed or discarded.
"""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
import time
from pathlib import Path

from sitepipe.backends.protocols import BuildResult
from sitepipe.backends.source import read_tree
from sitepipe.models.artifacts import SiteTree
from sitepipe.models.config import BuildSpec

logger = logging.getLogger(__name__)


def _text(stream: str | bytes | None) -> str:
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream


class SubprocessBuildSandbox:
    """Runs build commands locally.

    The build spec's ``image`` is recorded but not enforced; commands run with the
    host toolchain.

    Parameters
    ----------
    work_dir:
        Parent directory for per-build temporary directories.
    env:
        Extra environment variables for every command.
    """

    def __init__(self, work_dir: Path | None = None, *, env: dict[str, str] | None = None) -> None:
        self.work_dir = Path(work_dir) if work_dir is not None else None
        self.env = dict(env or {})

    def run(
        self, spec: BuildSpec, tree: SiteTree, *, timeout: float | None = None
    ) -> BuildResult:
        if self.work_dir is not None:
            self.work_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Build on image %s: %d command(s)", spec.image, len(spec.commands))

        with tempfile.TemporaryDirectory(dir=self.work_dir, prefix="sitepipe-build-") as tmp:
            root = Path(tmp)
            for key, data in tree.files.items():
                target = root / key
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)

            env = {**os.environ, **self.env}
            deadline = time.monotonic() + timeout if timeout is not None else None
            stdout: list[str] = []
            stderr: list[str] = []

            for command in spec.commands:
                remaining = None
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        return self._timed_out(stdout, stderr, command)
                stdout.append(f"[build] Running command {command}")
                try:
                    proc = subprocess.run(
                        command,
                        shell=True,
                        cwd=root,
                        env=env,
                        capture_output=True,
                        text=True,
                        timeout=remaining,
                    )
                except subprocess.TimeoutExpired as exc:
                    stdout.append(_text(exc.stdout))
                    stderr.append(_text(exc.stderr))
                    return self._timed_out(stdout, stderr, command)

                stdout.append(proc.stdout)
                stderr.append(proc.stderr)
                if proc.returncode != 0:
                    stderr.append(
                        f"[build] Command did not exit successfully {command} "
                        f"exit status {proc.returncode}"
                    )
                    return BuildResult(
                        exit_code=proc.returncode,
                        stdout="\n".join(filter(None, stdout)),
                        stderr="\n".join(filter(None, stderr)),
                    )

            base = root / spec.base_directory if spec.base_directory else root
            if not base.is_dir():
                stderr.append(f"[build] base-directory {spec.base_directory!r} does not exist")
                return BuildResult(
                    exit_code=1,
                    stdout="\n".join(filter(None, stdout)),
                    stderr="\n".join(filter(None, stderr)),
                )
            output = read_tree(root).select(spec.base_directory, spec.files)

        return BuildResult(
            exit_code=0,
            stdout="\n".join(filter(None, stdout)),
            stderr="\n".join(filter(None, stderr)),
            output=output,
        )

    @staticmethod
    def _timed_out(stdout: list[str], stderr: list[str], command: str) -> BuildResult:
        stderr.append(f"[build] Build timed out during {command}")
        return BuildResult(
            exit_code=-1,
            stdout="\n".join(filter(None, stdout)),
            stderr="\n".join(filter(None, stderr)),
            timed_out=True,
        )
