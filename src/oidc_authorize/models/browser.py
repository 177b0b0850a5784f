"""Browser interaction models.

The browser is the only collaborator that talks to the user. Anything that can
open a URL and hand back the final redirect data satisfies the `Browser`
protocol: a native webview, the system browser with a loopback listener, or a
test double.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from oidc_authorize.models.options import ResponseMode


class DisplayMode(Enum):
    """Hint for how the user agent should be presented."""

    VISIBLE = "visible"
    HIDDEN = "hidden"


class BrowserResultType(Enum):
    SUCCESS = "success"
    HTTP_ERROR = "http_error"
    UNKNOWN_ERROR = "unknown_error"
    TIMEOUT = "timeout"
    USER_CANCEL = "user_cancel"


@dataclass(frozen=True)
class BrowserOptions:
    """What the browser needs to run one interaction."""

    start_url: str
    end_url: str  # Empty for logout without a post logout redirect
    timeout: float = 300.0  # Seconds
    display_mode: DisplayMode = DisplayMode.VISIBLE
    response_mode: ResponseMode = ResponseMode.REDIRECT


@dataclass(frozen=True)
class BrowserResult:
    """Outcome of a browser interaction."""

    result_type: BrowserResultType
    response: str | None = None
    error: str | None = None
    error_description: str | None = None
    http_status: int | None = None

    def is_success(self) -> bool:
        return self.result_type is BrowserResultType.SUCCESS

    @classmethod
    def success(cls, response: str) -> BrowserResult:
        return cls(result_type=BrowserResultType.SUCCESS, response=response)

    @classmethod
    def user_cancel(cls, description: str | None = None) -> BrowserResult:
        return cls(
            result_type=BrowserResultType.USER_CANCEL,
            error="user_cancel",
            error_description=description,
        )

    @classmethod
    def timeout(cls, description: str | None = None) -> BrowserResult:
        return cls(
            result_type=BrowserResultType.TIMEOUT,
            error="timeout",
            error_description=description,
        )

    @classmethod
    def unknown_error(cls, description: str | None = None) -> BrowserResult:
        return cls(
            result_type=BrowserResultType.UNKNOWN_ERROR,
            error="unknown_error",
            error_description=description,
        )

    @classmethod
    def http_error(cls, status: int, description: str | None = None) -> BrowserResult:
        return cls(
            result_type=BrowserResultType.HTTP_ERROR,
            error="http_error",
            error_description=description,
            http_status=status,
        )


class Browser(Protocol):
    """Protocol for the user-facing step of a flow.

    Implementations must honor `options.timeout` and, when given, the
    `cancellation` event. Both are reported as results, not raised.
    """

    async def invoke(
        self,
        options: BrowserOptions,
        cancellation: asyncio.Event | None = None,
    ) -> BrowserResult:
        """Open `options.start_url` and return the final redirect data.

        Args:
            options: Start URL, expected end URL, timeout and display hints
            cancellation: Optional event the caller sets to abandon the flow

        Returns:
            BrowserResult: Success with the raw response, or a failure variant
        """
        ...
