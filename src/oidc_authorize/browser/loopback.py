"""System browser with a loopback redirect listener.

Opens the start URL in the user's default browser and serves the redirect URI
on the local machine (RFC 8252 Section 7.3) until the provider redirects back.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import webbrowser
from collections.abc import Callable
from urllib.parse import urlparse

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from oidc_authorize.models.browser import BrowserOptions, BrowserResult, DisplayMode

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_HTML = (
    "<!DOCTYPE html><html><head><title>Signed in</title></head>"
    "<body><p>You can close this window and return to the application.</p>"
    "</body></html>"
)


class SystemBrowser:
    """Browser that uses the default system browser and a local listener.

    The listener binds to the host and port of `options.end_url` unless
    overridden, answers the first GET (redirect response mode) or POST
    (form post response mode) on the callback path, and shuts down.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        path: str | None = None,
        opener: Callable[[str], bool] = webbrowser.open,
        response_html: str = DEFAULT_RESPONSE_HTML,
    ):
        """Initialize the system browser.

        Args:
            host: Interface to listen on (default: host of the end URL)
            port: Port to listen on (default: port of the end URL)
            path: Callback path (default: path of the end URL)
            opener: Function that opens a URL, returning False on failure
            response_html: Page shown to the user after the redirect
        """
        self.host = host
        self.port = port
        self.path = path
        self.opener = opener
        self.response_html = response_html

    async def invoke(
        self,
        options: BrowserOptions,
        cancellation: asyncio.Event | None = None,
    ) -> BrowserResult:
        if options.display_mode is DisplayMode.HIDDEN:
            logger.debug("System browser cannot run hidden, opening visibly")

        if not options.end_url:
            # Nothing to wait for (logout without post logout redirect)
            return await self._open(options.start_url) or BrowserResult.success("")

        host, port, path = self._listen_address(options.end_url)

        try:
            sock = self._bind(host, port)
        except OSError as e:
            logger.error(f"Failed to listen on {host}:{port}: {e}")
            return BrowserResult.unknown_error(f"Cannot listen on {host}:{port}: {e}")

        loop = asyncio.get_running_loop()
        response_future: asyncio.Future[str] = loop.create_future()

        config = uvicorn.Config(
            app=self._create_app(path, response_future),
            log_config=None,  # Leave the host's logging setup alone
            log_level="warning",
            lifespan="off",
        )
        server = uvicorn.Server(config)
        server_task = asyncio.create_task(server.serve(sockets=[sock]))

        try:
            while not server.started:
                if server_task.done():
                    return BrowserResult.unknown_error("Callback listener failed")
                await asyncio.sleep(0.01)

            logger.debug(f"Listening for callback on {host}:{port}{path}")

            failure = await self._open(options.start_url)
            if failure is not None:
                return failure

            return await self._wait_for_response(
                response_future, options.timeout, cancellation
            )
        finally:
            server.should_exit = True
            try:
                await server_task
            except Exception as e:
                logger.warning(f"Callback listener stopped with error: {e}")
            sock.close()

    async def _open(self, url: str) -> BrowserResult | None:
        """Open `url` in the system browser. Returns a result only on failure."""
        try:
            opened = await asyncio.to_thread(self.opener, url)
        except Exception as e:
            logger.error(f"Failed to open system browser: {e}")
            return BrowserResult.unknown_error(f"Failed to open browser: {e}")

        if opened is False:
            return BrowserResult.unknown_error("No browser available")
        return None

    async def _wait_for_response(
        self,
        response_future: asyncio.Future[str],
        timeout: float,
        cancellation: asyncio.Event | None,
    ) -> BrowserResult:
        waiters: set[asyncio.Future] = {response_future}
        cancel_task = None
        if cancellation is not None:
            cancel_task = asyncio.ensure_future(cancellation.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_task is not None and not cancel_task.done():
                cancel_task.cancel()
                await asyncio.gather(cancel_task, return_exceptions=True)

        if response_future in done:
            logger.info("Received authorization callback")
            return BrowserResult.success(response_future.result())

        response_future.cancel()
        if cancel_task is not None and cancel_task in done:
            return BrowserResult.user_cancel("Cancelled by caller")
        return BrowserResult.timeout(f"No callback within {timeout} seconds")

    def _create_app(self, path: str, response_future: asyncio.Future[str]) -> Starlette:
        async def handle_callback(request: Request) -> Response:
            if request.method == "POST":
                body = await request.body()
                data = body.decode("utf-8")
            else:
                data = str(request.url)

            if not response_future.done():
                response_future.set_result(data)
            return HTMLResponse(self.response_html)

        return Starlette(
            routes=[Route(path, handle_callback, methods=["GET", "POST"])]
        )

    def _listen_address(self, end_url: str) -> tuple[str, int, str]:
        parsed = urlparse(end_url)
        host = self.host or parsed.hostname or "127.0.0.1"
        if self.port is not None:
            port = self.port
        else:
            port = parsed.port or (443 if parsed.scheme == "https" else 80)
        path = self.path or parsed.path or "/"
        return host, port, path

    def _bind(self, host: str, port: int) -> socket.socket:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
        except OSError:
            sock.close()
            raise
        sock.set_inheritable(True)
        return sock
