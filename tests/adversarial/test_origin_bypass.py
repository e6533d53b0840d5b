"""Adversarial tests — attempts to reach published content around the CDN.

The bucket must refuse every read that does not carry the current origin
access token, and every write not made by the publisher.
"""

from __future__ import annotations

import pytest

from sitepipe.backends.errors import StorageAccessDenied
from sitepipe.edge.access_guard import OriginAccessGuard
from sitepipe.models.access import GET_OBJECT, LIST_BUCKET, StorageRequest
from sitepipe.models.distribution import EdgeRequest


@pytest.fixture
def live(deployment):
    """A deployment whose pipeline has run once."""
    result = deployment.run()
    assert result.succeeded
    return deployment


class TestDirectReads:
    def test_anonymous_read_denied(self, live):
        assert live.storage.get("index.html").status == 403

    def test_forged_tokens_denied(self, live):
        token = live.token.value
        for forged in ("", token.lower(), token + "X", token[:-1], f" {token}"):
            response = live.storage.get("index.html", headers={"Referer": forged})
            assert response.status == 403, forged

    def test_token_in_other_header_denied(self, live):
        response = live.storage.get("index.html", headers={"Authorization": live.token.value})
        assert response.status == 403

    def test_named_principal_gains_nothing(self, live):
        response = live.storage.get("index.html", principal="deploy-publisher")
        assert response.status == 403

    def test_missing_object_still_denied_without_token(self, live):
        # Denied before existence is checked.
        assert live.storage.get("does-not-exist").status == 403

    def test_listing_reveals_nothing(self, live):
        assert live.storage.list_public() == []
        assert not live.storage.authorizes(StorageRequest(action=LIST_BUCKET))


class TestStaleToken:
    def test_reprovisioned_guard_invalidates_old_token(self, live):
        old = live.token.value
        fresh = OriginAccessGuard(live.storage.name, token_factory=lambda: "EFRESHTOKEN0001")
        live.storage.attach_policy(fresh.access_policy())

        assert live.storage.get("index.html", headers={"Referer": old}).status == 403
        assert live.storage.get("index.html", headers={"Referer": "EFRESHTOKEN0001"}).status == 200

    def test_edge_breaks_when_policy_and_origin_disagree(self, live):
        fresh = OriginAccessGuard(live.storage.name, token_factory=lambda: "EOTHER")
        live.storage.attach_policy(fresh.access_policy())
        response = live.cdn.request(
            live.distribution_id, EdgeRequest(host=live.site.domain_name, path="/")
        )
        assert response.status == 403


class TestWrites:
    @pytest.mark.parametrize("principal", ["*", "anonymous", "deploy-publisher-2"])
    def test_only_publisher_writes(self, live, principal):
        with pytest.raises(StorageAccessDenied):
            live.storage.put("index.html", b"defaced", principal=principal)
        assert live.storage.snapshot()["index.html"] == b"<h1>home</h1>"

    def test_token_does_not_grant_write(self, live):
        assert not live.guard.permits(
            StorageRequest(action="storage:PutObject", key="index.html", headers={"Referer": live.token.value})
        )


class TestEdgeOnly:
    def test_edge_read_succeeds(self, live):
        response = live.cdn.request(live.distribution_id, EdgeRequest(host=live.site.domain_name))
        assert response.status == 200

    def test_policy_allows_read_only_with_header(self, live):
        allowed = StorageRequest(action=GET_OBJECT, key="index.html", headers={"Referer": live.token.value})
        assert live.guard.permits(allowed)
