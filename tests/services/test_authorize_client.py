"""Tests for OIDC authorization flow orchestration.

High-impact tests covering:
- Authorization parameters for every flow / PKCE / nonce / response mode mix
- Extra parameter merging
- Interactive authorization outcome mapping
- End session URL construction and logout
- Configuration errors raised before any browser interaction
"""

import asyncio
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import pytest

from oidc_authorize.models.authorize import AuthorizeRequest, LogoutRequest
from oidc_authorize.models.browser import (
    BrowserResult,
    BrowserResultType,
    DisplayMode,
)
from oidc_authorize.models.errors import (
    BrowserNotConfiguredError,
    ConfigurationError,
    MissingEndSessionEndpointError,
    SecurityMaterialError,
    UnsupportedFlowError,
)
from oidc_authorize.models.options import (
    AuthenticationFlow,
    ProviderInformation,
    ResponseMode,
)
from oidc_authorize.primitives.crypto import PKCEParameters, create_code_challenge
from oidc_authorize.services.authorize import AuthorizeClient
from tests.conftest import MockBrowser, make_options


def query_of(url: str) -> dict[str, list[str]]:
    return parse_qs(urlparse(url).query)


class TestAuthorizeParameters:
    """Test the parameter set for every supported configuration."""

    @pytest.mark.parametrize("use_pkce", [True, False])
    @pytest.mark.parametrize("use_nonce", [True, False])
    @pytest.mark.parametrize(
        "flow, response_type",
        [
            (AuthenticationFlow.AUTHORIZATION_CODE, "code"),
            (AuthenticationFlow.HYBRID, "code id_token"),
        ],
    )
    @pytest.mark.parametrize(
        "response_mode", [ResponseMode.REDIRECT, ResponseMode.FORM_POST]
    )
    def test_parameter_set_matches_configuration(
        self, use_pkce, use_nonce, flow, response_type, response_mode
    ):
        # Arrange
        client = AuthorizeClient(
            make_options(
                use_pkce=use_pkce,
                use_nonce=use_nonce,
                flow=flow,
                response_mode=response_mode,
            )
        )

        # Act
        state = client.create_authorize_state()
        query = query_of(state.start_url)

        # Assert
        expected = {
            "response_type": [response_type],
            "state": [state.state],
            "client_id": ["client-123"],
            "scope": ["openid profile"],
            "redirect_uri": ["https://app.example.com/cb"],
        }
        if use_nonce:
            expected["nonce"] = [state.nonce]
        if use_pkce:
            expected["code_challenge"] = [create_code_challenge(state.code_verifier)]
            expected["code_challenge_method"] = ["S256"]
        if response_mode is ResponseMode.FORM_POST:
            expected["response_mode"] = ["form_post"]

        assert query == expected
        assert (state.nonce is not None) == use_nonce
        assert (state.code_verifier is not None) == use_pkce

    def test_code_flow_with_pkce_scenario(self):
        """Code flow, PKCE on, nonce off, prompt passed as extra parameter."""
        # Arrange
        crypto = MagicMock()
        crypto.create_state.return_value = "generated-state"
        crypto.create_pkce_data.return_value = PKCEParameters(
            code_verifier="v" * 43, code_challenge="c" * 43
        )
        client = AuthorizeClient(
            make_options(
                client_id=None,
                use_nonce=False,
                redirect_uri="https://app/cb",
                security_material=crypto,
            )
        )

        # Act
        state = client.create_authorize_state({"prompt": "login"})

        # Assert
        assert state.start_url == (
            "https://auth.example.com/authorize?"
            "response_type=code&state=generated-state"
            f"&code_challenge={'c' * 43}&code_challenge_method=S256"
            "&scope=openid+profile&redirect_uri=https%3A%2F%2Fapp%2Fcb"
            "&prompt=login"
        )
        assert state.code_verifier == "v" * 43
        assert state.nonce is None
        crypto.create_nonce.assert_not_called()

    def test_verifier_never_in_url(self):
        client = AuthorizeClient(make_options())

        state = client.create_authorize_state()

        assert state.code_verifier not in state.start_url

    def test_empty_optional_values_are_omitted(self):
        client = AuthorizeClient(
            make_options(client_id="", scope=None, redirect_uri=None)
        )

        query = query_of(client.create_authorize_state().start_url)

        assert "client_id" not in query
        assert "scope" not in query
        assert "redirect_uri" not in query
        assert "response_mode" not in query


class TestExtraParameters:
    def setup_method(self):
        self.client = AuthorizeClient(make_options())

    def test_extra_parameters_override_defaults(self):
        parameters = self.client.create_authorize_parameters(
            "state-1", "nonce-1", "challenge-1", {"scope": "openid email"}
        )

        assert parameters["scope"] == "openid email"

    def test_blank_extra_parameters_are_dropped(self):
        parameters = self.client.create_authorize_parameters(
            "state-1",
            "nonce-1",
            "challenge-1",
            {"scope": "  ", "prompt": "", "acr_values": None, "ui_locales": "de"},
        )

        assert parameters["scope"] == "openid profile"
        assert "prompt" not in parameters
        assert "acr_values" not in parameters
        assert parameters["ui_locales"] == "de"

    def test_extra_parameters_are_merged_last(self):
        parameters = self.client.create_authorize_parameters(
            "state-1", "nonce-1", "challenge-1", {"login_hint": "alice"}
        )

        assert list(parameters)[0] == "response_type"
        assert list(parameters)[-1] == "login_hint"

    def test_state_and_response_type_cannot_be_overridden(self):
        # Act
        state = self.client.create_authorize_state(
            {"state": "attacker", "response_type": "token", "prompt": "login"}
        )
        query = query_of(state.start_url)

        # Assert
        assert query["state"] == [state.state]
        assert query["response_type"] == ["code"]
        assert query["prompt"] == ["login"]

    def test_missing_nonce_rejected_when_enabled(self):
        with pytest.raises(ValueError, match="nonce"):
            self.client.create_authorize_url("state-1", code_challenge="challenge-1")

    def test_missing_code_challenge_rejected_when_enabled(self):
        with pytest.raises(ValueError, match="code_challenge"):
            self.client.create_authorize_parameters("state-1", nonce="nonce-1")

    def test_disabled_features_need_no_values(self):
        client = AuthorizeClient(make_options(use_nonce=False, use_pkce=False))

        url = client.create_authorize_url("state-1")

        assert "None" not in url
        assert "nonce" not in query_of(url)
        assert "code_challenge" not in query_of(url)

    def test_caller_mapping_is_not_mutated(self):
        extra = {"prompt": "login", "display": ""}

        self.client.create_authorize_state(extra)

        assert extra == {"prompt": "login", "display": ""}

    def test_endpoint_with_existing_query_is_extended(self):
        client = AuthorizeClient(
            make_options(
                provider_information=ProviderInformation(
                    authorize_endpoint="https://auth.example.com/authorize?tenant=a"
                )
            )
        )

        url = client.create_authorize_url("state-1", "nonce-1", "challenge-1")

        assert url.startswith("https://auth.example.com/authorize?tenant=a&")
        assert query_of(url)["tenant"] == ["a"]


class TestCreateAuthorizeState:
    def test_successive_states_are_unique(self):
        client = AuthorizeClient(make_options())

        first = client.create_authorize_state()
        second = client.create_authorize_state()

        assert first.state != second.state
        assert first.nonce != second.nonce
        assert first.code_verifier != second.code_verifier

    def test_state_carries_redirect_uri(self):
        client = AuthorizeClient(make_options())

        state = client.create_authorize_state()

        assert state.redirect_uri == "https://app.example.com/cb"

    def test_unsupported_flow_fails_fast(self):
        client = AuthorizeClient(make_options(flow="implicit"))

        with pytest.raises(UnsupportedFlowError):
            client.create_authorize_state()

    def test_missing_authorize_endpoint_is_configuration_error(self):
        client = AuthorizeClient(
            make_options(
                provider_information=ProviderInformation(authorize_endpoint="")
            )
        )

        with pytest.raises(ConfigurationError):
            client.create_authorize_state()

    def test_security_material_failure_propagates(self):
        crypto = MagicMock()
        crypto.create_state.side_effect = RuntimeError("entropy unavailable")
        client = AuthorizeClient(make_options(security_material=crypto))

        with pytest.raises(SecurityMaterialError) as exc_info:
            client.create_authorize_state()

        assert "entropy unavailable" in str(exc_info.value)

    def test_debug_log_redacts_secrets(self, caplog):
        client = AuthorizeClient(make_options())

        with caplog.at_level("DEBUG", logger="oidc_authorize.services.authorize"):
            state = client.create_authorize_state()

        assert state.state in caplog.text
        assert state.code_verifier not in caplog.text
        assert state.nonce not in caplog.text

    def test_debug_log_includes_secrets_when_enabled(self, caplog):
        client = AuthorizeClient(make_options(log_sensitive_values=True))

        with caplog.at_level("DEBUG", logger="oidc_authorize.services.authorize"):
            state = client.create_authorize_state()

        assert state.code_verifier in caplog.text


class TestAuthorize:
    """Test interactive authorization and outcome mapping."""

    async def test_success_returns_response_data(self):
        # Arrange
        browser = MockBrowser(BrowserResult.success("https://app.example.com/cb?code=1"))
        client = AuthorizeClient(make_options(browser=browser))

        # Act
        result = await client.authorize(
            AuthorizeRequest(timeout=60, display_mode=DisplayMode.HIDDEN)
        )

        # Assert
        assert result.data == "https://app.example.com/cb?code=1"
        assert result.error is None
        assert not result.is_error

        options, cancellation = browser.invocations[0]
        assert options.start_url == result.state.start_url
        assert options.end_url == "https://app.example.com/cb"
        assert options.timeout == 60
        assert options.display_mode is DisplayMode.HIDDEN
        assert options.response_mode is ResponseMode.REDIRECT
        assert cancellation is None

    async def test_cancellation_maps_to_error(self):
        # Arrange
        browser = MockBrowser(BrowserResult.user_cancel("User closed the window"))
        client = AuthorizeClient(make_options(browser=browser))

        # Act
        result = await client.authorize()

        # Assert
        assert result.data is None
        assert result.error == "user_cancel"
        assert result.error_description == "User closed the window"
        assert result.is_error
        assert result.state.state
        assert result.state.code_verifier is not None
        assert result.state.nonce is not None

    async def test_timeout_maps_to_error(self):
        browser = MockBrowser(BrowserResult.timeout())
        client = AuthorizeClient(make_options(browser=browser))

        result = await client.authorize()

        assert result.error == "timeout"
        assert result.data is None

    async def test_failure_without_error_text_still_reports_error(self):
        browser = MockBrowser(
            BrowserResult(result_type=BrowserResultType.UNKNOWN_ERROR)
        )
        client = AuthorizeClient(make_options(browser=browser))

        result = await client.authorize()

        assert result.is_error
        assert result.error == "unknown_error"
        assert result.data is None

    async def test_form_post_mode_is_forwarded(self):
        browser = MockBrowser()
        client = AuthorizeClient(
            make_options(browser=browser, response_mode=ResponseMode.FORM_POST)
        )

        await client.authorize()

        options, _ = browser.invocations[0]
        assert options.response_mode is ResponseMode.FORM_POST

    async def test_extra_parameters_reach_start_url(self):
        browser = MockBrowser()
        client = AuthorizeClient(make_options(browser=browser))

        result = await client.authorize(
            AuthorizeRequest(extra_parameters={"prompt": "login"})
        )

        assert query_of(result.state.start_url)["prompt"] == ["login"]

    async def test_cancellation_event_is_forwarded(self):
        browser = MockBrowser()
        client = AuthorizeClient(make_options(browser=browser))
        event = asyncio.Event()

        await client.authorize(cancellation=event)

        assert browser.invocations[0][1] is event

    async def test_missing_browser_raises(self):
        client = AuthorizeClient(make_options(browser=None))

        with pytest.raises(BrowserNotConfiguredError):
            await client.authorize()

    async def test_unsupported_flow_never_invokes_browser(self):
        browser = MockBrowser()
        client = AuthorizeClient(make_options(browser=browser, flow="implicit"))

        with pytest.raises(UnsupportedFlowError):
            await client.authorize()

        assert browser.invocations == []

    async def test_each_call_uses_fresh_state(self):
        browser = MockBrowser()
        client = AuthorizeClient(make_options(browser=browser))

        first, second = await asyncio.gather(client.authorize(), client.authorize())

        assert first.state.state != second.state.state
        assert len(browser.invocations) == 2


class TestEndSession:
    """Test RP-Initiated Logout."""

    def test_end_session_url_with_all_parameters(self):
        client = AuthorizeClient(
            make_options(post_logout_redirect_uri="https://app.example.com/bye")
        )

        url = client.create_end_session_url(
            "https://auth.example.com/endsession",
            LogoutRequest(id_token_hint="id-token-123"),
        )

        assert url == (
            "https://auth.example.com/endsession?id_token_hint=id-token-123"
            "&post_logout_redirect_uri=https%3A%2F%2Fapp.example.com%2Fbye"
        )

    def test_end_session_url_omits_missing_values(self):
        client = AuthorizeClient(make_options())

        url = client.create_end_session_url(
            "https://auth.example.com/endsession", LogoutRequest()
        )

        assert url == "https://auth.example.com/endsession"

    async def test_end_session_invokes_browser(self):
        # Arrange
        browser = MockBrowser(BrowserResult.success(""))
        client = AuthorizeClient(
            make_options(
                browser=browser,
                post_logout_redirect_uri="https://app.example.com/bye",
            )
        )

        # Act
        result = await client.end_session(
            LogoutRequest(id_token_hint="hint", browser_timeout=30)
        )

        # Assert
        assert result is browser.result
        options, _ = browser.invocations[0]
        assert options.end_url == "https://app.example.com/bye"
        assert options.timeout == 30
        assert query_of(options.start_url)["id_token_hint"] == ["hint"]

    async def test_end_session_without_redirect_uses_empty_end_url(self):
        browser = MockBrowser(BrowserResult.success(""))
        client = AuthorizeClient(make_options(browser=browser))

        await client.end_session()

        options, _ = browser.invocations[0]
        assert options.end_url == ""

    async def test_end_session_returns_failures_unmodified(self):
        failure = BrowserResult.user_cancel("closed")
        browser = MockBrowser(failure)
        client = AuthorizeClient(make_options(browser=browser))

        result = await client.end_session()

        assert result is failure

    async def test_missing_end_session_endpoint_raises(self):
        browser = MockBrowser()
        client = AuthorizeClient(
            make_options(
                browser=browser,
                provider_information=ProviderInformation(
                    authorize_endpoint="https://auth.example.com/authorize"
                ),
            )
        )

        with pytest.raises(MissingEndSessionEndpointError):
            await client.end_session()

        assert browser.invocations == []

    async def test_end_session_without_browser_raises(self):
        client = AuthorizeClient(make_options(browser=None))

        with pytest.raises(BrowserNotConfiguredError):
            await client.end_session()
