import asyncio
import socket

import pytest

from oidc_authorize.models.browser import BrowserOptions, BrowserResult
from oidc_authorize.models.options import OidcClientOptions, ProviderInformation


class MockBrowser:
    """Browser double that records invocations and returns a canned result."""

    def __init__(self, result: BrowserResult | None = None):
        self.result = result or BrowserResult.success(
            "https://app.example.com/cb?code=abc&state=xyz"
        )
        self.invocations: list[tuple[BrowserOptions, asyncio.Event | None]] = []

    async def invoke(
        self,
        options: BrowserOptions,
        cancellation: asyncio.Event | None = None,
    ) -> BrowserResult:
        self.invocations.append((options, cancellation))
        return self.result


def make_options(**overrides) -> OidcClientOptions:
    """Build client options against a test provider."""
    values = {
        "provider_information": ProviderInformation(
            issuer="https://auth.example.com",
            authorize_endpoint="https://auth.example.com/authorize",
            token_endpoint="https://auth.example.com/token",
            end_session_endpoint="https://auth.example.com/endsession",
        ),
        "client_id": "client-123",
        "scope": "openid profile",
        "redirect_uri": "https://app.example.com/cb",
    }
    values.update(overrides)
    return OidcClientOptions(**values)


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
