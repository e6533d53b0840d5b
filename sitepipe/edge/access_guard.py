"""Origin access guard — restricts storage reads to the CDN's requests.

A single opaque token is provisioned per distribution lifetime and placed
in two places that must agree:

- the storage access policy, which allows public reads only when the
  request carries ``<header>: <token>``;
- the CDN origin configuration, which attaches that header to every
  request it sends to the storage backend.

Writes are granted separately and only to the publishing principal.

The token is a capability value compared by equality, not a credential:
it has no rotation and no expiry.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable

from sitepipe.models.access import (
    GET_OBJECT,
    LIST_BUCKET,
    PUBLIC_PRINCIPAL,
    PUT_OBJECT,
    AccessPolicy,
    AccessToken,
    PolicyStatement,
    StorageRequest,
)
from sitepipe.models.distribution import OriginConfig

logger = logging.getLogger(__name__)

DEFAULT_HEADER = "Referer"


def _default_token() -> str:
    return f"E{secrets.token_hex(7).upper()}"


class OriginAccessGuard:
    """Provisions the origin access token and derives policy and origin config.

    Parameters
    ----------
    bucket_name:
        The storage bucket being protected.
    comment:
        Free-text label recorded on the token (e.g. ``"OAI for <site>"``).
    publisher_principal:
        The only principal allowed to write objects.
    header_name:
        Request header carrying the token from the CDN to the origin.
    token_factory:
        Callable producing a fresh opaque token value.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        comment: str = "",
        publisher_principal: str = "deploy-publisher",
        header_name: str = DEFAULT_HEADER,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        self.bucket_name = bucket_name
        self.comment = comment
        self.publisher_principal = publisher_principal
        self.header_name = header_name
        self._token_factory = token_factory or _default_token
        self._token: AccessToken | None = None

    # ------------------------------------------------------------------
    # Token
    # ------------------------------------------------------------------

    def provision(self) -> AccessToken:
        """Return the token, generating it on first call only."""
        if self._token is None:
            self._token = AccessToken(value=self._token_factory(), comment=self.comment)
            logger.info(
                "Provisioned origin access token for bucket %s (%s)",
                self.bucket_name,
                self.comment or "no comment",
            )
        return self._token

    @property
    def token(self) -> AccessToken:
        """The provisioned token; provisions on first access."""
        return self.provision()

    # ------------------------------------------------------------------
    # Coupled artifacts
    # ------------------------------------------------------------------

    def access_policy(self) -> AccessPolicy:
        """Storage policy: token-gated public reads, publisher-only writes."""
        token = self.provision()
        return AccessPolicy(
            bucket_name=self.bucket_name,
            statements=(
                PolicyStatement(
                    sid="AllowEdgeRead",
                    actions=(GET_OBJECT, LIST_BUCKET),
                    principals=(PUBLIC_PRINCIPAL,),
                    resources=("*",),
                    conditions={"StringEquals": {f"header:{self.header_name}": token.value}},
                ),
                PolicyStatement(
                    sid="AllowPublisherWrite",
                    actions=(PUT_OBJECT,),
                    principals=(self.publisher_principal,),
                    resources=("*",),
                ),
            ),
        )

    def origin_config(self) -> OriginConfig:
        """CDN origin settings attaching the token header to every request."""
        token = self.provision()
        return OriginConfig(
            bucket_name=self.bucket_name,
            origin_access_identity=token.value,
            custom_headers={self.header_name: token.value},
        )

    def permits(self, request: StorageRequest) -> bool:
        """Evaluate *request* against the current access policy."""
        return self.access_policy().evaluate(request)
