"""Authorization request, state and result models.

`AuthorizeState` is the security context of one in-flight authorization
attempt. The host must persist it across the redirect (e.g. in session
storage); the client keeps nothing between calls.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from oidc_authorize.models.browser import DisplayMode
from oidc_authorize.models.errors import AuthorizationResponseError

if TYPE_CHECKING:
    from oidc_authorize.models.response import AuthorizeResponse

REDACTED = "***"


@dataclass(frozen=True)
class AuthorizeState:
    """Security context of one authorization attempt.

    `nonce` and `code_verifier` are None when the corresponding feature is
    disabled, never empty strings.
    """

    state: str
    redirect_uri: str | None
    start_url: str
    nonce: str | None = field(default=None, repr=False)
    code_verifier: str | None = field(default=None, repr=False)

    def to_log_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Diagnostic view of the state with secrets redacted by default."""

        def mask(value: str | None) -> str | None:
            if value is None or include_sensitive:
                return value
            return REDACTED

        start_url = self.start_url
        if self.nonce and not include_sensitive:
            # The nonce travels in the start URL as well
            start_url = start_url.replace(f"nonce={self.nonce}", f"nonce={REDACTED}")

        return {
            "state": self.state,
            "nonce": mask(self.nonce),
            "code_verifier": mask(self.code_verifier),
            "redirect_uri": self.redirect_uri,
            "start_url": start_url,
        }


@dataclass(frozen=True)
class AuthorizeRequest:
    """Per-call input for an interactive authorization."""

    extra_parameters: Mapping[str, str] = field(default_factory=dict)
    timeout: float = 300.0  # Seconds
    display_mode: DisplayMode = DisplayMode.VISIBLE

    def __post_init__(self) -> None:
        # Snapshot so later changes to the caller's dict are not observed
        object.__setattr__(
            self,
            "extra_parameters",
            MappingProxyType(dict(self.extra_parameters or {})),
        )


@dataclass
class AuthorizeResult:
    """Result of an interactive authorization.

    `state` is always populated, even on failure, because downstream
    verification still needs the PKCE verifier and nonce.
    """

    state: AuthorizeState
    data: str | None = None
    error: str | None = None
    error_description: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def parse_response(self) -> AuthorizeResponse:
        """Parse `data` into an `AuthorizeResponse`.

        Raises:
            AuthorizationResponseError: If the result carries no response data
        """
        from oidc_authorize.services.response import parse_authorize_response

        if self.data is None:
            raise AuthorizationResponseError(
                f"Authorization did not complete: {self.error}"
            )
        return parse_authorize_response(self.data)


@dataclass(frozen=True)
class LogoutRequest:
    """Per-call input for RP-Initiated Logout."""

    id_token_hint: str | None = None
    browser_timeout: float = 300.0  # Seconds
    browser_display_mode: DisplayMode = DisplayMode.VISIBLE
