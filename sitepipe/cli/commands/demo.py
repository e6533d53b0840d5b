"""``sitepipe demo`` — two independent environments, run side by side.

Provisions a ``develop`` site on ``dev.<domain>`` and a ``main`` site on
``<domain>``, each with its own token, bucket, distribution and pipeline,
runs both pipelines concurrently, then checks each edge: a missing page
must come back as the 404 document and a direct bucket read must be denied.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sitepipe.backends.build import SubprocessBuildSandbox
from sitepipe.backends.cdn import InMemoryCdn
from sitepipe.backends.source import InMemorySource
from sitepipe.backends.storage import InMemoryBucket
from sitepipe.config import settings
from sitepipe.models.artifacts import SiteTree
from sitepipe.models.config import SiteConfig, SourceRepository
from sitepipe.models.distribution import EdgeRequest
from sitepipe.monitor.renderer import RunRenderer
from sitepipe.website import WebsiteDeployment, provision_website

console = Console()

ENVIRONMENTS: list[tuple[str, str, str]] = [
    # (site name, branch, subdomain prefix)
    ("StaticWebsiteDev", "develop", "dev."),
    ("StaticWebsiteProd", "main", ""),
]


def _sample_tree(branch: str) -> SiteTree:
    return SiteTree.from_texts({
        "README.md": "# sample site\n",
        "website/index.html": f"<h1>Hello from {branch}</h1>",
        "website/404.html": "<h1>Not found</h1>",
        "website/assets/app.js": f"console.log('{branch}');",
    })


def _provision(name: str, branch: str, domain: str) -> WebsiteDeployment:
    site = SiteConfig(
        name=name,
        domain_name=domain,
        branch=branch,
        source=SourceRepository(owner="example", repo="static-site", root_directory="website"),
    )
    storage = InMemoryBucket(domain)
    return provision_website(
        site,
        source=InMemorySource({branch: _sample_tree(branch)}),
        sandbox=SubprocessBuildSandbox(settings.work_dir),
        storage=storage,
        cdn=InMemoryCdn([storage]),
        max_workers=settings.max_parallel_actions,
    )


def demo_cmd(
    domain: str = typer.Option("example.com", "--domain", help="Production domain name."),
) -> None:
    """Provision and run develop and main pipelines independently."""
    deployments = [
        _provision(name, branch, f"{prefix}{domain}")
        for name, branch, prefix in ENVIRONMENTS
    ]

    console.print()
    console.print(
        Panel(
            "[bold]sitepipe demo[/bold]\n\n"
            + "\n".join(
                f"{d.site.branch:<8} -> {d.site.domain_name} (distribution {d.distribution_id})"
                for d in deployments
            ),
            border_style="cyan",
            padding=(1, 2),
        )
    )

    with ThreadPoolExecutor(max_workers=len(deployments)) as pool:
        results = list(pool.map(lambda d: d.run(), deployments))

    renderer = RunRenderer(console=console)
    for result in results:
        renderer.print_result(result)

    checks = Table(title="Edge checks", header_style="bold cyan")
    checks.add_column("Domain")
    checks.add_column("GET /")
    checks.add_column("GET /missing")
    checks.add_column("http://")
    checks.add_column("Direct bucket read")
    for deployment in deployments:
        host = deployment.site.domain_name
        front = deployment.cdn.distribution(deployment.distribution_id)
        root = front.handle(EdgeRequest(host=host, path="/"))
        missing = front.handle(EdgeRequest(host=host, path="/missing"))
        cleartext = front.handle(EdgeRequest(host=host, path="/", scheme="http"))
        direct = deployment.storage.get("index.html")
        checks.add_row(
            host,
            str(root.status),
            f"{missing.status} ({len(missing.body)} bytes)",
            str(cleartext.status),
            str(direct.status),
        )
    console.print(checks)

    if not all(r.succeeded for r in results):
        raise typer.Exit(code=1)
