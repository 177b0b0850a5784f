"""Exception hierarchy for OIDC authorization errors.

Configuration errors are fatal and raised before any user interaction starts.
Browser interaction outcomes (cancel, timeout, denial) are never raised; they
are returned to the caller as data on the result objects.
"""

from __future__ import annotations


class OidcClientError(Exception):
    """Base exception for all OIDC client errors."""

    pass


class ConfigurationError(OidcClientError):
    """Raised when the client is misconfigured. Not retryable."""

    pass


class BrowserNotConfiguredError(ConfigurationError):
    """Raised when an interactive operation runs without a browser."""

    pass


class MissingEndSessionEndpointError(ConfigurationError):
    """Raised when the provider has no end session endpoint."""

    pass


class UnsupportedFlowError(ConfigurationError, ValueError):
    """Raised when the configured authentication flow is not supported."""

    pass


class SecurityMaterialError(OidcClientError):
    """Raised when state, nonce or PKCE generation fails."""

    pass


class AuthorizationResponseError(OidcClientError):
    """Raised when an authorization response is malformed or carries an error."""

    pass


class StateValidationError(AuthorizationResponseError):
    """Raised when the state parameter of a response is missing or mismatched.

    This indicates either a forged response (CSRF) or a response that belongs
    to a different authorization attempt.
    """

    pass
