"""OIDC authorization flow orchestration service.

Builds authorization and end session URLs, creates the per-attempt security
state (state, nonce, PKCE), hands the URL to the configured browser and maps
the browser outcome to a result.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from oidc_authorize.models.authorize import (
    AuthorizeRequest,
    AuthorizeResult,
    AuthorizeState,
    LogoutRequest,
)
from oidc_authorize.models.browser import BrowserOptions, BrowserResult
from oidc_authorize.models.errors import (
    BrowserNotConfiguredError,
    ConfigurationError,
    MissingEndSessionEndpointError,
    SecurityMaterialError,
)
from oidc_authorize.models.options import (
    OidcClientOptions,
    ResponseMode,
    resolve_response_type,
)
from oidc_authorize.primitives.request_url import RequestUrl

logger = logging.getLogger(__name__)

# Generated per attempt or derived from the flow
PROTECTED_PARAMETERS = frozenset({"response_type", "state"})


class AuthorizeClient:
    """Orchestrates interactive OIDC authorization and logout.

    Handles:
    - Authorization code and hybrid flows
    - Redirect and form post response modes
    - State, nonce and PKCE (S256) generation
    - RP-Initiated Logout

    The client is stateless apart from its read-only options, so one instance
    can serve concurrent flows. Every call returns its own `AuthorizeState`.
    """

    def __init__(self, options: OidcClientOptions):
        """Initialize the authorize client.

        Args:
            options: Immutable client configuration
        """
        self._options = options
        self._crypto = options.security_material

    @property
    def options(self) -> OidcClientOptions:
        return self._options

    async def authorize(
        self,
        request: AuthorizeRequest | None = None,
        cancellation: asyncio.Event | None = None,
    ) -> AuthorizeResult:
        """Run an interactive authorization round trip.

        Args:
            request: Extra parameters, timeout and display mode
            cancellation: Optional event forwarded to the browser

        Returns:
            AuthorizeResult: Always carries the state; `data` on success,
            `error` otherwise

        Raises:
            ConfigurationError: If no browser is configured or the flow is
                unsupported. Raised before the browser is invoked.
        """
        logger.debug("authorize")

        if self._options.browser is None:
            raise BrowserNotConfiguredError("No browser configured.")

        request = request or AuthorizeRequest()
        result = AuthorizeResult(
            state=self.create_authorize_state(request.extra_parameters)
        )

        browser_options = BrowserOptions(
            start_url=result.state.start_url,
            end_url=self._options.redirect_uri or "",
            timeout=request.timeout,
            display_mode=request.display_mode,
            response_mode=(
                ResponseMode.FORM_POST
                if self._options.response_mode is ResponseMode.FORM_POST
                else ResponseMode.REDIRECT
            ),
        )

        browser_result = await self._options.browser.invoke(
            browser_options, cancellation
        )

        if browser_result.is_success():
            logger.info("Authorization interaction completed")
            result.data = browser_result.response
            return result

        logger.warning(
            f"Authorization interaction failed: {browser_result.result_type.value}"
            f" - {browser_result.error}"
        )
        result.error = browser_result.error or browser_result.result_type.value
        result.error_description = browser_result.error_description
        return result

    async def end_session(
        self,
        request: LogoutRequest | None = None,
        cancellation: asyncio.Event | None = None,
    ) -> BrowserResult:
        """Run an interactive RP-Initiated Logout.

        Returns:
            BrowserResult: The browser outcome, unmodified

        Raises:
            MissingEndSessionEndpointError: If the provider has no end session
                endpoint
            BrowserNotConfiguredError: If no browser is configured
        """
        logger.debug("end_session")

        endpoint = self._options.provider_information.end_session_endpoint
        if not endpoint:
            raise MissingEndSessionEndpointError(
                "Discovery document has no end session endpoint"
            )
        if self._options.browser is None:
            raise BrowserNotConfiguredError("No browser configured.")

        request = request or LogoutRequest()
        url = self.create_end_session_url(endpoint, request)

        browser_options = BrowserOptions(
            start_url=url,
            end_url=self._options.post_logout_redirect_uri or "",
            timeout=request.browser_timeout,
            display_mode=request.browser_display_mode,
        )

        return await self._options.browser.invoke(browser_options, cancellation)

    def create_authorize_state(
        self, extra_parameters: Mapping[str, str] | None = None
    ) -> AuthorizeState:
        """Create a fresh authorization state and its start URL.

        Raises:
            ConfigurationError: If the flow is unsupported
            SecurityMaterialError: If state, nonce or PKCE generation fails
        """
        logger.debug("create_authorize_state")

        try:
            state = self._crypto.create_state()

            code_verifier = None
            code_challenge = None
            if self._options.use_pkce:
                pkce = self._crypto.create_pkce_data()
                code_verifier = pkce.code_verifier
                code_challenge = pkce.code_challenge

            nonce = self._crypto.create_nonce() if self._options.use_nonce else None
        except SecurityMaterialError:
            raise
        except Exception as e:
            raise SecurityMaterialError(
                f"Failed to generate security material: {e}"
            ) from e

        authorize_state = AuthorizeState(
            state=state,
            nonce=nonce,
            code_verifier=code_verifier,
            redirect_uri=self._options.redirect_uri,
            start_url=self.create_authorize_url(
                state, nonce, code_challenge, extra_parameters
            ),
        )

        logger.debug(
            "Authorize state: "
            f"{authorize_state.to_log_dict(self._options.log_sensitive_values)}"
        )

        return authorize_state

    def create_authorize_url(
        self,
        state: str,
        nonce: str | None = None,
        code_challenge: str | None = None,
        extra_parameters: Mapping[str, str] | None = None,
    ) -> str:
        """Build the authorization endpoint URL for one attempt."""
        logger.debug("create_authorize_url")

        endpoint = self._options.provider_information.authorize_endpoint
        if not endpoint:
            raise ConfigurationError("Provider information has no authorize endpoint")

        parameters = self.create_authorize_parameters(
            state, nonce, code_challenge, extra_parameters
        )
        return RequestUrl(endpoint).create(parameters)

    def create_end_session_url(self, endpoint: str, request: LogoutRequest) -> str:
        logger.debug("create_end_session_url")

        return RequestUrl(endpoint).create_end_session_url(
            id_token_hint=request.id_token_hint,
            post_logout_redirect_uri=self._options.post_logout_redirect_uri,
        )

    def create_authorize_parameters(
        self,
        state: str,
        nonce: str | None = None,
        code_challenge: str | None = None,
        extra_parameters: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Build the ordered authorization request parameters.

        Extra parameters are merged last and override same-keyed defaults,
        except `response_type` and `state`. Blank extra values are dropped.

        Raises:
            UnsupportedFlowError: If the configured flow has no response type
            ValueError: If nonce or PKCE is enabled but its value is missing
        """
        logger.debug("create_authorize_parameters")

        options = self._options
        parameters = {
            "response_type": resolve_response_type(options.flow),
            "state": state,
        }

        if options.use_nonce:
            if not nonce:
                raise ValueError("nonce is required when nonce use is enabled")
            parameters["nonce"] = nonce
        if options.use_pkce:
            if not code_challenge:
                raise ValueError("code_challenge is required when PKCE is enabled")
            parameters["code_challenge"] = code_challenge
            parameters["code_challenge_method"] = "S256"
        if options.client_id:
            parameters["client_id"] = options.client_id
        if options.scope:
            parameters["scope"] = options.scope
        if options.redirect_uri:
            parameters["redirect_uri"] = options.redirect_uri
        if options.response_mode is ResponseMode.FORM_POST:
            parameters["response_mode"] = "form_post"

        for key, value in dict(extra_parameters or {}).items():
            if key in PROTECTED_PARAMETERS:
                logger.warning(
                    f"Ignoring extra parameter that cannot be overridden: {key}"
                )
                continue
            if value is not None and value.strip():
                parameters[key] = value

        return parameters
