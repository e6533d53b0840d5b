"""Tests for the distribution config and the edge request contract."""

from __future__ import annotations

import gzip

import pytest

from sitepipe.backends.cdn import InMemoryCdn
from sitepipe.backends.errors import TlsNegotiationError, UnknownDistributionError
from sitepipe.backends.storage import InMemoryBucket
from sitepipe.edge.access_guard import OriginAccessGuard
from sitepipe.edge.distribution import build_distribution_config
from sitepipe.models.distribution import EdgeRequest, SecurityPolicyProtocol, ViewerProtocolPolicy

HOST = "example.com"


@pytest.fixture
def published() -> tuple[InMemoryBucket, InMemoryCdn, str]:
    """A bucket holding a small site behind a fresh distribution."""
    bucket = InMemoryBucket(HOST)
    guard = OriginAccessGuard(HOST)
    bucket.attach_policy(guard.access_policy())
    for key, body in {
        "index.html": b"<h1>home</h1>",
        "404.html": b"<h1>not found</h1>",
        "assets/app.js": b"console.log('app');" * 20,
        "logo.png": b"\x89PNG",
    }.items():
        bucket.put(key, body, principal="deploy-publisher")
    cdn = InMemoryCdn([bucket])
    distribution_id = cdn.create_distribution(
        build_distribution_config([HOST], guard.origin_config())
    )
    return bucket, cdn, distribution_id


def _get(cdn: InMemoryCdn, distribution_id: str, path: str = "/", **kwargs):
    return cdn.request(distribution_id, EdgeRequest(host=HOST, path=path, **kwargs))


class TestBuildDistributionConfig:
    def test_contract(self):
        guard = OriginAccessGuard(HOST)
        config = build_distribution_config([HOST], guard.origin_config(), certificate_ref="cert-1")
        assert config.default_root_object == "index.html"
        assert config.minimum_protocol_version == SecurityPolicyProtocol.TLS_V1_2_2021
        assert config.viewer_protocol_policy == ViewerProtocolPolicy.REDIRECT_TO_HTTPS
        assert config.compress
        assert config.certificate_ref == "cert-1"
        error = config.error_map[404]
        assert (error.response_http_status, error.response_page_path) == (404, "/404.html")
        assert config.origin_access_token == guard.token.value


class TestEdgeRequests:
    def test_root_serves_index(self, published):
        _, cdn, dist = published
        response = _get(cdn, dist, "/")
        assert response.status == 200
        assert response.body == b"<h1>home</h1>"

    def test_missing_path_serves_error_document_with_404(self, published):
        _, cdn, dist = published
        response = _get(cdn, dist, "/no/such/page")
        assert response.status == 404
        assert response.body == b"<h1>not found</h1>"

    def test_missing_error_document_still_404(self, published):
        bucket, cdn, dist = published
        bucket._objects.pop("404.html")
        response = _get(cdn, dist, "/missing")
        assert response.status == 404
        assert response.body == b""

    def test_http_redirected_to_https(self, published):
        _, cdn, dist = published
        response = _get(cdn, dist, "/about?x=1", scheme="http")
        assert response.status == 301
        assert response.headers["Location"] == f"https://{HOST}/about?x=1"

    def test_tls_below_floor_refused(self, published):
        _, cdn, dist = published
        with pytest.raises(TlsNegotiationError):
            _get(cdn, dist, "/", tls_version=(1, 1))
        assert _get(cdn, dist, "/", tls_version=(1, 2)).status == 200

    def test_unknown_host(self, published):
        _, cdn, dist = published
        response = cdn.request(dist, EdgeRequest(host="evil.example.net"))
        assert response.status == 403

    def test_host_match_ignores_case(self, published):
        _, cdn, dist = published
        response = cdn.request(dist, EdgeRequest(host=HOST.upper()))
        assert response.status == 200
        assert response.body == b"<h1>home</h1>"

    def test_methods(self, published):
        _, cdn, dist = published
        assert _get(cdn, dist, "/", method="POST").status == 403
        options = _get(cdn, dist, "/", method="OPTIONS")
        assert options.status == 200
        assert "GET" in options.headers["Allow"]
        head = _get(cdn, dist, "/", method="HEAD")
        assert head.status == 200 and head.body == b""

    def test_gzip_for_text_when_accepted(self, published):
        _, cdn, dist = published
        response = _get(cdn, dist, "/assets/app.js", headers={"Accept-Encoding": "gzip, br"})
        assert response.headers["Content-Encoding"] == "gzip"
        assert gzip.decompress(response.body).startswith(b"console.log")

    def test_accept_encoding_header_name_ignores_case(self, published):
        _, cdn, dist = published
        response = _get(cdn, dist, "/assets/app.js", headers={"accept-encoding": "GZIP"})
        assert response.headers["Content-Encoding"] == "gzip"

    def test_binary_not_compressed(self, published):
        _, cdn, dist = published
        response = _get(cdn, dist, "/logo.png", headers={"Accept-Encoding": "gzip"})
        assert "Content-Encoding" not in response.headers

    def test_unknown_distribution(self):
        with pytest.raises(UnknownDistributionError):
            InMemoryCdn().request("E0", EdgeRequest(host=HOST))


class TestCacheAndInvalidation:
    def test_second_request_served_from_cache(self, published):
        _, cdn, dist = published
        assert not _get(cdn, dist, "/").from_cache
        assert _get(cdn, dist, "/").from_cache

    def test_stale_until_invalidated(self, published):
        bucket, cdn, dist = published
        _get(cdn, dist, "/")
        bucket.put("index.html", b"<h1>v2</h1>", principal="deploy-publisher")
        assert _get(cdn, dist, "/").body == b"<h1>home</h1>"

        cdn.create_invalidation(dist, ["/*"], caller_reference="run-2")
        fresh = _get(cdn, dist, "/")
        assert fresh.body == b"<h1>v2</h1>"
        assert not fresh.from_cache

    def test_error_documents_not_cached(self, published):
        _, cdn, dist = published
        _get(cdn, dist, "/missing")
        assert "missing" not in cdn.distribution(dist).cached_keys()

    def test_path_scoped_purge(self, published):
        _, cdn, dist = published
        _get(cdn, dist, "/")
        _get(cdn, dist, "/assets/app.js")
        cdn.create_invalidation(dist, ["/assets/*"])
        assert cdn.distribution(dist).cached_keys() == ["index.html"]

    def test_same_caller_reference_is_idempotent(self, published):
        _, cdn, dist = published
        first = cdn.create_invalidation(dist, ["/*"], caller_reference="run-1")
        again = cdn.create_invalidation(dist, ["/*"], caller_reference="run-1")
        other = cdn.create_invalidation(dist, ["/*"], caller_reference="run-2")
        assert first == again != other
        assert len(cdn.invalidations(dist)) == 2

    @pytest.mark.parametrize("paths", [[], ["index.html"]])
    def test_invalid_paths_rejected(self, published, paths):
        _, cdn, dist = published
        with pytest.raises(ValueError):
            cdn.create_invalidation(dist, paths)

    def test_distribution_needs_known_origin(self):
        guard = OriginAccessGuard("nowhere.com")
        with pytest.raises(ValueError):
            InMemoryCdn().create_distribution(build_distribution_config(["nowhere.com"], guard.origin_config()))
