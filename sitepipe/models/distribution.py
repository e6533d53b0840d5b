"""Distribution (CDN front) configuration models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SecurityPolicyProtocol(str, Enum):
    """Minimum viewer TLS protocol floors, lowest to highest."""

    TLS_V1_2016 = "TLSv1_2016"
    TLS_V1_1_2016 = "TLSv1.1_2016"
    TLS_V1_2_2018 = "TLSv1.2_2018"
    TLS_V1_2_2019 = "TLSv1.2_2019"
    TLS_V1_2_2021 = "TLSv1.2_2021"

    @property
    def protocol_version(self) -> tuple[int, int]:
        """The (major, minor) TLS version this floor admits."""
        return _PROTOCOL_FLOORS[self]


_PROTOCOL_FLOORS: dict[SecurityPolicyProtocol, tuple[int, int]] = {
    SecurityPolicyProtocol.TLS_V1_2016: (1, 0),
    SecurityPolicyProtocol.TLS_V1_1_2016: (1, 1),
    SecurityPolicyProtocol.TLS_V1_2_2018: (1, 2),
    SecurityPolicyProtocol.TLS_V1_2_2019: (1, 2),
    SecurityPolicyProtocol.TLS_V1_2_2021: (1, 2),
}


class ViewerProtocolPolicy(str, Enum):
    REDIRECT_TO_HTTPS = "redirect-to-https"
    HTTPS_ONLY = "https-only"
    ALLOW_ALL = "allow-all"


ALLOW_GET_HEAD_OPTIONS = ("GET", "HEAD", "OPTIONS")


class ErrorResponse(BaseModel):
    """Maps an origin error status to an error document.

    The rewritten response keeps an error status: masking an error as 200
    or turning it into a redirect is rejected.
    """

    model_config = ConfigDict(frozen=True)

    http_status: int = Field(ge=400, le=599)
    response_http_status: int = Field(ge=400, le=599)
    response_page_path: str

    @field_validator("response_page_path")
    @classmethod
    def _absolute_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("response_page_path must start with '/'")
        return value


class OriginConfig(BaseModel):
    """How the distribution reaches the storage backend."""

    model_config = ConfigDict(frozen=True)

    bucket_name: str
    origin_access_identity: str
    custom_headers: dict[str, str] = {}


class DistributionConfig(BaseModel):
    """The CDN-facing configuration entity serving published content."""

    model_config = ConfigDict(frozen=True)

    distribution_id: str = ""
    domain_names: list[str] = Field(min_length=1)
    default_root_object: str = "index.html"
    error_responses: list[ErrorResponse] = []
    minimum_protocol_version: SecurityPolicyProtocol = SecurityPolicyProtocol.TLS_V1_2_2021
    viewer_protocol_policy: ViewerProtocolPolicy = ViewerProtocolPolicy.REDIRECT_TO_HTTPS
    certificate_ref: str = ""
    origin: OriginConfig
    compress: bool = True
    allowed_methods: tuple[str, ...] = ALLOW_GET_HEAD_OPTIONS
    comment: str = ""

    @property
    def error_map(self) -> dict[int, ErrorResponse]:
        """status code -> error response."""
        return {er.http_status: er for er in self.error_responses}

    @property
    def tls_policy(self) -> SecurityPolicyProtocol:
        return self.minimum_protocol_version

    @property
    def origin_access_token(self) -> str:
        return self.origin.origin_access_identity


class EdgeRequest(BaseModel):
    """A viewer request arriving at the edge."""

    model_config = ConfigDict(frozen=True)

    host: str
    path: str = "/"
    method: str = "GET"
    scheme: str = "https"
    tls_version: tuple[int, int] = (1, 3)
    headers: dict[str, str] = {}

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class EdgeResponse(BaseModel):
    """What the edge returns to the viewer."""

    model_config = ConfigDict(frozen=True)

    status: int
    body: bytes = b""
    headers: dict[str, str] = {}
    from_cache: bool = False
