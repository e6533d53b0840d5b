"""Static website deployment — provisioning plus the three-stage pipeline.

``provision_website`` wires one site environment end to end:

1. provision the origin access token;
2. attach the token-gated access policy to the storage bucket;
3. create the distribution whose origin sends the token header;
4. build the Source -> Build -> Deploy pipeline, with the cache
   invalidation gated behind the deploy inside the Deploy stage.

Each call yields an independent ``WebsiteDeployment``: separate
environments (e.g. ``develop`` and ``main``) get separate guards, buckets,
distributions and pipelines.
"""

from __future__ import annotations

import logging

from sitepipe.backends.protocols import (
    BuildSandbox,
    CdnService,
    SourceLocation,
    SourceProvider,
    StorageBackend,
)
from sitepipe.core.actions import BuildAction, DeployAction, InvalidationTrigger, SourceAction
from sitepipe.core.pipeline import Pipeline
from sitepipe.core.stage import Stage
from sitepipe.edge.access_guard import OriginAccessGuard
from sitepipe.edge.distribution import build_distribution_config
from sitepipe.models.access import AccessToken
from sitepipe.models.config import SiteConfig
from sitepipe.models.distribution import DistributionConfig
from sitepipe.models.pipeline import RunResult

logger = logging.getLogger(__name__)

SOURCE_OUTPUT = "source_output"
BUILD_OUTPUT = "build_output"


class WebsiteDeployment:
    """Everything provisioned for one site environment."""

    def __init__(
        self,
        site: SiteConfig,
        *,
        guard: OriginAccessGuard,
        token: AccessToken,
        storage: StorageBackend,
        cdn: CdnService,
        distribution_config: DistributionConfig,
        pipeline: Pipeline,
    ) -> None:
        self.site = site
        self.guard = guard
        self.token = token
        self.storage = storage
        self.cdn = cdn
        self.distribution_config = distribution_config
        self.pipeline = pipeline

    @property
    def distribution_id(self) -> str:
        return self.distribution_config.distribution_id

    def run(self) -> RunResult:
        """Run the site's pipeline once."""
        return self.pipeline.run()


def build_site_pipeline(
    site: SiteConfig,
    *,
    source: SourceProvider,
    sandbox: BuildSandbox,
    storage: StorageBackend,
    cdn: CdnService,
    distribution_id: str,
    max_workers: int | None = None,
) -> Pipeline:
    """The fixed Source -> Build -> Deploy pipeline for *site*."""
    location = SourceLocation(
        connection_ref=site.source.connection_ref,
        owner=site.source.owner,
        repo=site.source.repo,
        branch=site.branch,
    )
    source_action = SourceAction(
        "Github_Source",
        provider=source,
        location=location,
        output=SOURCE_OUTPUT,
    )
    build_action = BuildAction(
        "Build_Static_Website",
        sandbox=sandbox,
        spec=site.effective_build_spec(),
        input=SOURCE_OUTPUT,
        output=BUILD_OUTPUT,
    )
    deploy_action = DeployAction(
        "Storage_Deploy",
        storage=storage,
        input=BUILD_OUTPUT,
        principal=site.publisher_principal,
        run_order=1,
    )
    invalidate_action = InvalidationTrigger(
        "InvalidateCache",
        cdn=cdn,
        distribution_id=distribution_id,
        paths=site.invalidation_paths,
        run_order=2,
    )
    return Pipeline(
        f"{site.name}_Pipeline",
        [
            Stage("Source", [source_action], max_workers=max_workers),
            Stage("Build", [build_action], max_workers=max_workers),
            Stage("Deploy", [deploy_action, invalidate_action], max_workers=max_workers),
        ],
        distribution_id=distribution_id,
    )


def provision_website(
    site: SiteConfig,
    *,
    source: SourceProvider,
    sandbox: BuildSandbox,
    storage: StorageBackend,
    cdn: CdnService,
    guard: OriginAccessGuard | None = None,
    max_workers: int | None = None,
) -> WebsiteDeployment:
    """Provision edge access control and the distribution, then the pipeline."""
    if storage.name != site.bucket_name:
        raise ValueError(
            f"Storage bucket {storage.name!r} does not match site bucket {site.bucket_name!r}"
        )
    guard = guard or OriginAccessGuard(
        site.bucket_name,
        comment=f"OAI for {site.name}",
        publisher_principal=site.publisher_principal,
    )
    token = guard.provision()
    storage.attach_policy(guard.access_policy())

    config = build_distribution_config(
        [site.domain_name],
        guard.origin_config(),
        certificate_ref=site.certificate_ref,
        comment=f"Distribution for {site.name}",
        error_document=storage.error_document,
        index_document=storage.index_document,
    )
    distribution_id = cdn.create_distribution(config)
    config = config.model_copy(update={"distribution_id": distribution_id})

    pipeline = build_site_pipeline(
        site,
        source=source,
        sandbox=sandbox,
        storage=storage,
        cdn=cdn,
        distribution_id=distribution_id,
        max_workers=max_workers,
    )
    logger.info(
        "Provisioned %s: bucket=%s distribution=%s branch=%s",
        site.name,
        storage.name,
        distribution_id,
        site.branch,
    )
    return WebsiteDeployment(
        site,
        guard=guard,
        token=token,
        storage=storage,
        cdn=cdn,
        distribution_config=config,
        pipeline=pipeline,
    )
