"""sitepipe CLI — Typer-based command-line interface.

Provides the ``sitepipe`` command with subcommands for running a site's
deploy pipeline from a local checkout, running a two-environment demo, and
previewing the provisioned access policy and distribution.

All output uses Rich for formatted terminal display.
"""
