"""Main Typer application — imports and registers all CLI commands.

Entry point: ``sitepipe`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from sitepipe.cli.commands.demo import demo_cmd
from sitepipe.cli.commands.policy import policy_cmd
from sitepipe.cli.commands.run import run_cmd
from sitepipe.config import settings

app = typer.Typer(
    name="sitepipe",
    help="sitepipe: deploy pipelines for static sites behind an origin-restricted CDN.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="run", help="Run Source -> Build -> Deploy for one site.")(run_cmd)
app.command(name="demo", help="Run independent develop and main pipelines with sample content.")(demo_cmd)
app.command(name="policy", help="Show the access policy and distribution for a domain.")(policy_cmd)


@app.callback()
def _configure(
    log_level: str = typer.Option(
        settings.log_level, "--log-level", help="Logging level (DEBUG, INFO, WARNING...)."
    ),
) -> None:
    """Install the Rich log handler before any command runs."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                rich_tracebacks=True,
                show_path=False,
                tracebacks_show_locals=settings.debug,
            )
        ],
        force=True,
    )


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
