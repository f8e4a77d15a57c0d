# OAuth redirect listener: one-shot local aiohttp server for the auth callback.
# Created: 2026-03-04
# Updated: 2026-03-10 - Served with aiohttp.web.

from __future__ import annotations

import asyncio
import logging
import urllib.parse
from dataclasses import dataclass

from aiohttp import web

from gemini_bridge.exceptions import AuthError, OAuthTimeoutError

logger = logging.getLogger(__name__)

_SUCCESS_PAGE = (
    "<html><body><h3>Gemini bridge authorized.</h3>"
    "<p>You can close this window and return to the terminal.</p></body></html>"
)
_ERROR_PAGE = "<html><body><h3>Authorization failed.</h3><p>{error}</p></body></html>"


@dataclass(frozen=True)
class CallbackResult:
    code: str
    state: str


async def wait_for_callback(redirect_uri: str, timeout: float) -> CallbackResult:
    """Listen on the redirect URI until the browser delivers ``code`` + ``state``.

    Raises:
        OAuthTimeoutError: nothing arrived within *timeout* seconds.
        AuthError: the provider redirected back with an ``error`` parameter.
    """
    parsed = urllib.parse.urlparse(redirect_uri)
    host = parsed.hostname or "localhost"
    port = parsed.port or 80
    path = parsed.path or "/"

    outcome: asyncio.Future[CallbackResult] = asyncio.get_running_loop().create_future()

    async def handle_callback(request: web.Request) -> web.Response:
        error = request.query.get("error", "")
        code = request.query.get("code", "")
        state = request.query.get("state", "")

        if error:
            if not outcome.done():
                outcome.set_exception(AuthError(f"Authorization denied: {error}"))
            return web.Response(
                status=400, text=_ERROR_PAGE.format(error=error), content_type="text/html"
            )
        if not code:
            return web.Response(
                status=400, text=_ERROR_PAGE.format(error="missing code"), content_type="text/html"
            )
        if not outcome.done():
            outcome.set_result(CallbackResult(code=code, state=state))
        return web.Response(text=_SUCCESS_PAGE, content_type="text/html")

    app = web.Application()
    app.router.add_get(path, handle_callback)

    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    try:
        await site.start()
        logger.info("Waiting for OAuth callback on %s (timeout %ss)", redirect_uri, timeout)
        return await asyncio.wait_for(outcome, timeout=timeout)
    except TimeoutError as e:
        raise OAuthTimeoutError(f"No OAuth callback received within {timeout}s") from e
    finally:
        await runner.cleanup()
