"""``sitepipe run`` — run one site's pipeline from a local checkout.

The checkout is read from ``<checkouts>/<owner>/<repo>/<branch>``, built in
a subprocess sandbox, and published into a directory-backed bucket under
``<publish-dir>/<domain>``.  The distribution lives for the duration of the
command.
"""

from __future__ import annotations

import re
from pathlib import Path

import typer
from rich.console import Console

from sitepipe.backends.build import SubprocessBuildSandbox
from sitepipe.backends.cdn import InMemoryCdn
from sitepipe.backends.source import DirectorySource
from sitepipe.backends.storage import DirectoryBucket
from sitepipe.config import settings
from sitepipe.models.config import BuildSpec, SiteConfig, SourceRepository
from sitepipe.monitor.renderer import RunRenderer
from sitepipe.website import provision_website

console = Console()


def _site_name(domain: str) -> str:
    return re.sub(r"[^A-Za-z0-9]+", "_", domain).strip("_")


def run_cmd(
    domain: str = typer.Option(..., "--domain", help="Domain name served by the distribution."),
    owner: str = typer.Option(..., "--owner", help="Repository owner."),
    repo: str = typer.Option(..., "--repo", help="Repository name."),
    branch: str = typer.Option("main", "--branch", "-b", help="Branch to deploy."),
    root_directory: str = typer.Option(
        "", "--root-directory", help="Directory inside the repository holding the site."
    ),
    commands: list[str] | None = typer.Option(
        None, "--command", "-c", help="Build command (repeatable, run in order)."
    ),
    files: list[str] | None = typer.Option(
        None, "--files", help="Artifact glob relative to the root directory (repeatable)."
    ),
    checkouts: Path = typer.Option(
        settings.checkouts_path, "--checkouts", help="Directory holding <owner>/<repo>/<branch> checkouts."
    ),
    publish_dir: Path = typer.Option(
        settings.publish_path, "--publish-dir", help="Directory receiving published buckets."
    ),
    timeout: float = typer.Option(
        settings.build_timeout_seconds, "--timeout", help="Build wall-clock budget in seconds."
    ),
) -> None:
    """Run Source -> Build -> Deploy (+ cache invalidation) for one site."""
    site = SiteConfig(
        name=_site_name(domain),
        domain_name=domain,
        branch=branch,
        source=SourceRepository(owner=owner, repo=repo, root_directory=root_directory),
        build=BuildSpec(
            commands=list(commands or []),
            files=list(files or ["**/*"]),
            base_directory=root_directory,
            timeout_seconds=timeout,
        ),
        invalidation_paths=list(settings.invalidation_paths),
        publisher_principal=settings.publisher_principal,
    )
    storage = DirectoryBucket(domain, publish_dir / domain)
    deployment = provision_website(
        site,
        source=DirectorySource(checkouts),
        sandbox=SubprocessBuildSandbox(settings.work_dir),
        storage=storage,
        cdn=InMemoryCdn([storage]),
        max_workers=settings.max_parallel_actions,
    )

    console.print(
        f"[bold green]Provisioned[/bold green] {domain} -> distribution "
        f"[cyan]{deployment.distribution_id}[/cyan]"
    )
    result = deployment.run()
    RunRenderer(console=console).print_result(result)

    if not result.succeeded:
        raise typer.Exit(code=1)
    console.print(f"Published {len(result.keys_written)} object(s) to {storage.root}")
