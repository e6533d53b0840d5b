"""sitepipe: deploy pipelines for static sites behind an origin-restricted CDN.

A versioned artifact moves Source -> Build -> Deploy; inside Deploy the
cache invalidation is gated behind the upload.  Storage reads are limited
to the CDN by an origin access token shared between the bucket policy and
the distribution's origin configuration.
"""

__version__ = "0.1.0"

from sitepipe.core.pipeline import Pipeline
from sitepipe.core.stage import Stage
from sitepipe.edge.access_guard import OriginAccessGuard
from sitepipe.website import provision_website

__all__ = ["Pipeline", "Stage", "OriginAccessGuard", "provision_website", "__version__"]
