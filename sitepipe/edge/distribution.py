"""Distribution configuration and the CDN front that serves it.

``build_distribution_config`` fixes the site's edge contract: HTTPS-only
final hop (cleartext is redirected), a pinned TLS floor, the default root
document, and an error map that serves the error document with the same
404 status.

``DistributionFront`` applies that contract to viewer requests, fetching
from the storage origin with the origin access header attached and keeping
an edge cache that invalidations purge.
"""

from __future__ import annotations

import fnmatch
import gzip
import logging
import threading
from collections.abc import Iterable

from sitepipe.backends.errors import TlsNegotiationError
from sitepipe.backends.protocols import StorageBackend
from sitepipe.models.distribution import (
    DistributionConfig,
    EdgeRequest,
    EdgeResponse,
    ErrorResponse,
    OriginConfig,
    SecurityPolicyProtocol,
    ViewerProtocolPolicy,
)

logger = logging.getLogger(__name__)

_COMPRESSIBLE_PREFIXES = ("text/", "application/javascript", "application/json", "image/svg+xml")


def build_distribution_config(
    domain_names: list[str],
    origin: OriginConfig,
    *,
    certificate_ref: str = "",
    comment: str = "",
    error_document: str = "404.html",
    index_document: str = "index.html",
) -> DistributionConfig:
    """Distribution settings for a static site behind a guarded origin."""
    return DistributionConfig(
        domain_names=list(domain_names),
        default_root_object=index_document,
        error_responses=[
            ErrorResponse(
                http_status=404,
                response_http_status=404,
                response_page_path=f"/{error_document}",
            )
        ],
        minimum_protocol_version=SecurityPolicyProtocol.TLS_V1_2_2021,
        viewer_protocol_policy=ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
        certificate_ref=certificate_ref,
        origin=origin,
        compress=True,
        comment=comment,
    )


class DistributionFront:
    """Serves viewer requests for one distribution.

    Parameters
    ----------
    config:
        The distribution configuration (with its id assigned).
    origin:
        The storage backend named by ``config.origin``.
    """

    def __init__(self, config: DistributionConfig, origin: StorageBackend) -> None:
        self.config = config
        self.origin = origin
        self._cache: dict[str, EdgeResponse] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    def handle(self, request: EdgeRequest) -> EdgeResponse:
        """Apply the edge contract to *request*."""
        cfg = self.config
        if request.host.lower() not in {d.lower() for d in cfg.domain_names}:
            return EdgeResponse(status=403, body=b"Unknown host")

        if request.scheme == "http":
            if cfg.viewer_protocol_policy == ViewerProtocolPolicy.REDIRECT_TO_HTTPS:
                return EdgeResponse(
                    status=301,
                    headers={"Location": f"https://{request.host}{request.path}"},
                )
            if cfg.viewer_protocol_policy == ViewerProtocolPolicy.HTTPS_ONLY:
                return EdgeResponse(status=403, body=b"HTTPS required")
        elif request.tls_version < cfg.minimum_protocol_version.protocol_version:
            raise TlsNegotiationError(
                f"TLS {request.tls_version[0]}.{request.tls_version[1]} is below the "
                f"{cfg.minimum_protocol_version.value} floor"
            )

        method = request.method.upper()
        if method not in cfg.allowed_methods:
            return EdgeResponse(status=403, body=b"Method not allowed")
        if method == "OPTIONS":
            return EdgeResponse(status=200, headers={"Allow": ", ".join(cfg.allowed_methods)})

        key = self._object_key(request.path)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return self._finalize(cached.model_copy(update={"from_cache": True}), request)

        origin_response = self.origin.get(key, headers=dict(cfg.origin.custom_headers))
        if origin_response.status == 200:
            response = EdgeResponse(
                status=200,
                body=origin_response.body,
                headers={"Content-Type": origin_response.content_type},
            )
            with self._lock:
                self._cache[key] = response
            return self._finalize(response, request)

        mapped = cfg.error_map.get(origin_response.status)
        if mapped is None:
            return EdgeResponse(status=origin_response.status)
        return self._finalize(self._error_document(mapped), request)

    def _error_document(self, mapped: ErrorResponse) -> EdgeResponse:
        page = self.origin.get(
            self._object_key(mapped.response_page_path),
            headers=dict(self.config.origin.custom_headers),
        )
        if page.status != 200:
            logger.warning(
                "Error document %s unavailable (origin status %d)",
                mapped.response_page_path,
                page.status,
            )
            return EdgeResponse(status=mapped.response_http_status)
        return EdgeResponse(
            status=mapped.response_http_status,
            body=page.body,
            headers={"Content-Type": page.content_type},
        )

    def _finalize(self, response: EdgeResponse, request: EdgeRequest) -> EdgeResponse:
        if request.method.upper() == "HEAD":
            return response.model_copy(update={"body": b""})
        accepts_gzip = "gzip" in (request.header("Accept-Encoding") or "").lower()
        content_type = response.headers.get("Content-Type", "")
        if (
            self.config.compress
            and accepts_gzip
            and response.body
            and content_type.startswith(_COMPRESSIBLE_PREFIXES)
        ):
            headers = dict(response.headers)
            headers["Content-Encoding"] = "gzip"
            return response.model_copy(
                update={"body": gzip.compress(response.body, mtime=0), "headers": headers}
            )
        return response

    def _object_key(self, path: str) -> str:
        key = path.split("?", 1)[0].lstrip("/")
        return key or self.config.default_root_object

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def purge(self, paths: Iterable[str]) -> int:
        """Drop cached objects matching any of *paths*; return the count."""
        patterns = list(paths)
        with self._lock:
            doomed = [
                key
                for key in self._cache
                if any(fnmatch.fnmatchcase(f"/{key}", p) for p in patterns)
            ]
            for key in doomed:
                del self._cache[key]
        return len(doomed)

    def cached_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._cache)
