"""Loopback HTTP endpoint that receives the authorization server's redirect.

This module provides :class:`CallbackListener`, a single-use aiohttp
server bound to ``127.0.0.1``. It accepts the browser request that carries
the authorization response, answers it with a small HTML page, and hands
the raw response to exactly one waiter through a
:class:`~loopauth.loopback.pending.PendingCallback`.

Lifecycle::

    created -> started -> awaiting_callback -> resolved -> disposed

Typical usage::

    config = ListenerConfig(port=allocate_port(), timeout=120)
    async with CallbackListener(config) as listener:
        launcher.open(authorize_url)
        outcome = await listener.wait_for_callback()
    # the port is released here, whatever the outcome

See Also:
    :class:`loopauth.flow.LoginFlow`, which drives a listener per login.
"""

from __future__ import annotations

import asyncio
import enum
import html
import logging
from typing import Optional

from aiohttp import hdrs, web

from loopauth.exceptions import BindError
from loopauth.loopback.pending import PendingCallback
from loopauth.loopback.ports import LOOPBACK_HOST
from loopauth.models import CallbackOutcome, CallbackRequest, ListenerConfig

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class ListenerState(str, enum.Enum):
    CREATED = "created"
    STARTED = "started"
    AWAITING_CALLBACK = "awaiting_callback"
    RESOLVED = "resolved"
    DISPOSED = "disposed"


def render_page(title: str, message: str, detail: Optional[str] = None) -> str:
    """Render the minimal HTML page shown in the user's browser tab."""
    body = f"<h1>{html.escape(message)}</h1>"
    if detail:
        body += f"<p>{html.escape(detail)}</p>"
    return (
        "<!doctype html>"
        "<html><head><meta charset=\"utf-8\">"
        f"<title>{html.escape(title)}</title></head>"
        f"<body>{body}</body></html>"
    )


class CallbackListener:
    """Single-use loopback endpoint for one authorization attempt.

    The first qualifying request (a ``GET``, or a form-encoded ``POST``)
    resolves the pending callback; browser retries and other late requests
    get a generic page and never change the stored outcome. ``POST`` with
    any other content type is answered with 415 and ``PUT``/``DELETE``/...
    with 405, and neither resolves anything.

    Use it as an async context manager so the port is released on every
    exit path.

    Args:
        config: Port, path, timeout, and grace delay for this listener.
    """

    def __init__(self, config: ListenerConfig) -> None:
        self._config = config
        self._pending = PendingCallback()
        self._state = ListenerState.CREATED
        self._runner: Optional[web.AppRunner] = None
        self._served = False

    @property
    def config(self) -> ListenerConfig:
        return self._config

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def url(self) -> str:
        """The URL the endpoint answers on, e.g. ``http://127.0.0.1:53121/``."""
        return f"http://{LOOPBACK_HOST}:{self._config.port}{self._config.path}"

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CallbackListener:
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.dispose()

    async def start(self) -> None:
        """Bind the endpoint and begin accepting connections.

        Raises:
            BindError: If the port is no longer available.
            RuntimeError: If this listener has already been started.
        """
        if self._state is not ListenerState.CREATED:
            raise RuntimeError("CallbackListener instances are single-use")

        app = web.Application()
        app.router.add_route("*", self._config.path, self._handle)

        runner = web.AppRunner(app, access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, LOOPBACK_HOST, self._config.port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            raise BindError(
                f"Cannot bind loopback endpoint on port {self._config.port}: {exc}"
            ) from exc

        self._runner = runner
        self._state = ListenerState.STARTED
        logger.debug("Callback listener started on %s", self.url)

    async def wait_for_callback(
        self,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> CallbackOutcome:
        """Suspend until the browser delivers a response or the wait ends.

        The wait ends on whichever comes first: a qualifying request, the
        timeout, or *cancel_event* being set. Timeouts and cancellation
        force-resolve the callback to a timeout outcome; if a request won
        the race, its outcome is returned instead.

        Args:
            timeout: Seconds to wait. Defaults to ``config.timeout``.
            cancel_event: Optional event that aborts the wait when set.

        Returns:
            The single outcome of this listener.

        Raises:
            RuntimeError: If the listener was never started.
        """
        if self._state is ListenerState.CREATED:
            raise RuntimeError("CallbackListener has not been started")
        if self._state is ListenerState.STARTED:
            self._state = ListenerState.AWAITING_CALLBACK

        if timeout is None:
            timeout = self._config.timeout

        waiters = {asyncio.ensure_future(self._pending.wait())}
        if cancel_event is not None:
            waiters.add(asyncio.ensure_future(cancel_event.wait()))
        try:
            await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

        if cancel_event is not None and cancel_event.is_set():
            self._resolve(CallbackOutcome.timeout("Login cancelled."))
        else:
            self._resolve(CallbackOutcome.timeout())
        return self._pending.outcome

    async def dispose(self) -> None:
        """Stop accepting connections and release the port.

        When a browser request was answered, waits ``config.grace_delay``
        seconds first so the confirmation page is not cut off. A callback
        that is still pending is resolved to a protocol error so no waiter
        is left hanging. Safe to call more than once.
        """
        if self._state is ListenerState.DISPOSED:
            return

        self._resolve(
            CallbackOutcome.protocol_error("Listener closed before a callback arrived.")
        )

        runner, self._runner = self._runner, None
        if runner is not None:
            if self._served and self._config.grace_delay > 0:
                await asyncio.sleep(self._config.grace_delay)
            await runner.cleanup()

        self._state = ListenerState.DISPOSED
        logger.debug("Callback listener on port %d disposed", self._config.port)

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def _handle(self, request: web.Request) -> web.StreamResponse:
        method = request.method.upper()

        if method == hdrs.METH_POST and request.content_type.lower() != FORM_CONTENT_TYPE:
            logger.debug("Rejected POST with content type %r", request.content_type)
            return web.Response(status=415)
        if method not in (hdrs.METH_GET, hdrs.METH_POST):
            logger.debug("Rejected %s request", method)
            return web.Response(status=405)

        if self._pending.done():
            return web.Response(
                text=render_page("Login", "This login has already completed."),
                content_type="text/html",
            )

        response: Optional[web.StreamResponse] = None
        try:
            callback = CallbackRequest(
                method=method,
                content_type=request.headers.get(hdrs.CONTENT_TYPE),
                query_string=request.rel_url.raw_query_string,
                body=await request.text() if method == hdrs.METH_POST else "",
            )
            page = self._confirmation_page().encode("utf-8")

            response = web.StreamResponse(status=200)
            response.content_type = "text/html"
            response.charset = "utf-8"
            response.content_length = len(page)
            await response.prepare(request)
            await response.write(page)
            await response.write_eof()
        except Exception as exc:
            logger.exception("Failed to answer the authorization callback")
            if response is not None and response.prepared:
                return response
            detail = str(exc) if logger.isEnabledFor(logging.DEBUG) else None
            return web.Response(
                status=400,
                text=render_page("Login", "Invalid request.", detail),
                content_type="text/html",
            )

        self._served = True
        payload = callback.payload
        if payload.strip():
            self._resolve(CallbackOutcome.success(payload))
        else:
            self._resolve(CallbackOutcome.empty_response())
        return response

    def _confirmation_page(self) -> str:
        return render_page("Login", "You can now return to the application.")

    def _resolve(self, outcome: CallbackOutcome) -> None:
        if self._pending.resolve(outcome):
            logger.debug("Callback resolved: %s", outcome.kind.value)
            if self._state is not ListenerState.DISPOSED:
                self._state = ListenerState.RESOLVED

    def __repr__(self) -> str:
        return f"CallbackListener(url={self.url!r}, state={self._state.value!r})"
