"""Edge access control — origin-restriction token and the CDN front.

Modules
-------
access_guard
    ``OriginAccessGuard`` provisions the origin access token and builds the
    two coupled artifacts derived from it: the storage access policy and
    the CDN origin configuration.
distribution
    ``build_distribution_config`` and ``DistributionFront``, which serves
    viewer requests through the edge cache to the guarded origin.
"""

from sitepipe.edge.access_guard import OriginAccessGuard
from sitepipe.edge.distribution import DistributionFront, build_distribution_config

__all__ = ["OriginAccessGuard", "DistributionFront", "build_distribution_config"]
