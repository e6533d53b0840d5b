"""Runtime settings — env-driven via pydantic-settings.

Reads from a .env file and SITEPIPE_* environment variables.  The engine
never consults these implicitly; the CLI reads them and passes explicit
values into each Pipeline it constructs.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class SitepipeSettings(BaseSettings):
    """Operator settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export SITEPIPE_LOG_LEVEL=DEBUG
        export SITEPIPE_BUILD_TIMEOUT_SECONDS=300
        export SITEPIPE_CHECKOUTS_PATH=/srv/checkouts
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SITEPIPE_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Local collaborator paths
    work_dir: Path = Path(".sitepipe/work")
    checkouts_path: Path = Path(".sitepipe/checkouts")
    publish_path: Path = Path(".sitepipe/publish")

    # Scheduling
    max_parallel_actions: int = 4
    build_timeout_seconds: float = 900.0

    # Deploy / invalidation
    publisher_principal: str = "deploy-publisher"
    invalidation_paths: list[str] = ["/*"]

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level instance for the CLI: import as `from sitepipe.config import settings`
settings = SitepipeSettings()
