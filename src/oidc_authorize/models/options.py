"""Client configuration models.

Configuration is set once when the client is built and never mutated, so
concurrent flows can read it without locking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from oidc_authorize.models.errors import (
    BrowserNotConfiguredError,
    ConfigurationError,
    UnsupportedFlowError,
)
from oidc_authorize.primitives.crypto import CryptoProvider, SecurityMaterialProvider

if TYPE_CHECKING:
    from oidc_authorize.models.browser import Browser


class AuthenticationFlow(Enum):
    AUTHORIZATION_CODE = "authorization_code"
    HYBRID = "hybrid"


class ResponseMode(Enum):
    """How the provider delivers the authorization response."""

    REDIRECT = "redirect"
    FORM_POST = "form_post"


# OIDC Core 1.0 Section 3
RESPONSE_TYPES = {
    AuthenticationFlow.AUTHORIZATION_CODE: "code",
    AuthenticationFlow.HYBRID: "code id_token",
}


def resolve_response_type(flow: Any) -> str:
    """Map a configured flow to its `response_type` value.

    Raises:
        UnsupportedFlowError: If the flow is not one of `AuthenticationFlow`
    """
    try:
        return RESPONSE_TYPES[flow]
    except (KeyError, TypeError):
        raise UnsupportedFlowError(
            f"Unsupported authentication flow: {flow!r}"
        ) from None


class ProviderInformation(BaseModel):
    """Endpoints of the OpenID provider.

    Usually taken from a discovery document fetched by the host application.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    issuer: str | None = None
    authorize_endpoint: str = Field(alias="authorization_endpoint")
    token_endpoint: str | None = None
    end_session_endpoint: str | None = None
    userinfo_endpoint: str | None = None

    @classmethod
    def from_discovery_document(cls, document: dict[str, Any]) -> ProviderInformation:
        """Build provider information from an OIDC discovery document."""
        return cls.model_validate(document)


@dataclass(frozen=True)
class OidcClientOptions:
    """Immutable configuration for an `AuthorizeClient`."""

    provider_information: ProviderInformation
    client_id: str | None = None
    scope: str | None = "openid profile"
    redirect_uri: str | None = None
    post_logout_redirect_uri: str | None = None

    flow: AuthenticationFlow = AuthenticationFlow.AUTHORIZATION_CODE
    response_mode: ResponseMode = ResponseMode.REDIRECT
    use_pkce: bool = True
    use_nonce: bool = True

    browser: Browser | None = None
    security_material: SecurityMaterialProvider = field(default_factory=CryptoProvider)

    # Include nonce and PKCE verifier in debug logs
    log_sensitive_values: bool = False

    def validate(self, require_browser: bool = True) -> None:
        """Check the configuration up front so hosts can fail at startup.

        Raises:
            ConfigurationError: If the configuration cannot run any flow
        """
        resolve_response_type(self.flow)

        if not self.provider_information.authorize_endpoint:
            raise ConfigurationError("Provider information has no authorize endpoint")
        if require_browser and self.browser is None:
            raise BrowserNotConfiguredError("No browser configured.")
