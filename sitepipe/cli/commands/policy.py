"""``sitepipe policy`` — preview the edge access artifacts for a domain."""

from __future__ import annotations

import json

import typer
from rich.console import Console

from sitepipe.edge.access_guard import OriginAccessGuard
from sitepipe.edge.distribution import build_distribution_config

console = Console()


def policy_cmd(
    domain: str = typer.Option(..., "--domain", help="Domain name (also the bucket name)."),
    certificate: str = typer.Option("", "--certificate", help="TLS certificate reference."),
    publisher: str = typer.Option(
        "deploy-publisher", "--publisher", help="Principal allowed to write objects."
    ),
) -> None:
    """Print the storage access policy and distribution config as JSON.

    A fresh token is generated on every invocation; nothing is persisted.
    """
    guard = OriginAccessGuard(domain, comment=f"OAI for {domain}", publisher_principal=publisher)
    guard.provision()
    distribution = build_distribution_config(
        [domain], guard.origin_config(), certificate_ref=certificate
    )
    console.print_json(
        json.dumps(
            {
                "access_policy": guard.access_policy().model_dump(mode="json"),
                "distribution": distribution.model_dump(mode="json"),
            }
        )
    )
