"""Browser that delegates the user interaction to the host application.

Useful for CLIs that print the URL and read back the redirect, for UI
integrations that own their own webview, and as a test double.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from oidc_authorize.models.browser import BrowserOptions, BrowserResult

logger = logging.getLogger(__name__)

AuthorizationHandler = Callable[[str], Awaitable[str]]


class CallbackBrowser:
    """Browser backed by an async handler.

    The handler receives the start URL and returns the final redirect data
    (a callback URL or a form post body).
    """

    def __init__(self, handler: AuthorizationHandler):
        self.handler = handler

    async def invoke(
        self,
        options: BrowserOptions,
        cancellation: asyncio.Event | None = None,
    ) -> BrowserResult:
        handler_task = asyncio.ensure_future(self.handler(options.start_url))
        waiters: set[asyncio.Future] = {handler_task}

        cancel_task = None
        if cancellation is not None:
            cancel_task = asyncio.ensure_future(cancellation.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=options.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            pending = [task for task in waiters if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        if handler_task in done:
            try:
                response = handler_task.result()
            except Exception as e:
                logger.error(f"Authorization handler failed: {e}")
                return BrowserResult.unknown_error(str(e))
            return BrowserResult.success(response)

        if cancel_task is not None and cancel_task in done:
            return BrowserResult.user_cancel("Cancelled by caller")

        return BrowserResult.timeout(
            f"No response within {options.timeout} seconds"
        )
