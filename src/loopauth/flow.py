"""Login orchestration: port, listener, browser, and token exchange.

:class:`LoginFlow` runs one authorization-code login per :meth:`~LoginFlow.signin`
call::

    allocate port -> prepare authorize URL -> start listener
        -> open browser -> wait for callback -> dispose listener
        -> process response

The listener is always disposed (and its port released) before the raw
response is handed to the OIDC client, whatever the outcome of the wait.
Setup failures (:class:`~loopauth.exceptions.ResourceError`,
:class:`~loopauth.exceptions.BindError`,
:class:`~loopauth.exceptions.DiscoveryError`) are raised; everything that
happens after the browser has been opened is reported as a
:class:`~loopauth.models.LoginResult`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx

from loopauth.exceptions import BrowserLaunchError
from loopauth.loopback.browser import BrowserLauncher, select_launcher
from loopauth.loopback.listener import CallbackListener
from loopauth.loopback.ports import LOOPBACK_HOST, allocate_port
from loopauth.models import (
    AuthorizeState,
    CallbackOutcome,
    ListenerConfig,
    LoginResult,
    LoginResultType,
    LoginSettings,
    OutcomeKind,
)
from loopauth.oidc.client import OidcClient

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 30.0
"""Seconds allowed for each request to the provider."""


def redirect_uri_for(port: int, callback_path: Optional[str] = None) -> str:
    """Build the loopback redirect URI for *port*.

    >>> redirect_uri_for(53121)
    'http://127.0.0.1:53121'
    >>> redirect_uri_for(53121, "/callback/")
    'http://127.0.0.1:53121/callback'
    """
    uri = f"http://{LOOPBACK_HOST}:{port}"
    suffix = (callback_path or "").strip("/")
    if suffix:
        uri += "/" + suffix
    return uri


class LoginFlow:
    """Drives interactive logins against one provider.

    Each :meth:`signin` call uses its own port and listener, so concurrent
    calls on the same flow do not share callback state.

    Args:
        settings: Effective login settings.
        launcher: Opens the authorization URL. Defaults to the launcher
            for the current platform.
        client: OIDC client to use instead of building one from
            *settings* per login.
        allocator: Returns a free loopback port when ``settings.port`` is 0.
        http_client: Client for provider requests. When omitted, one is
            created and closed per login.
    """

    def __init__(
        self,
        settings: LoginSettings,
        launcher: Optional[BrowserLauncher] = None,
        client: Optional[OidcClient] = None,
        allocator: Callable[[], int] = allocate_port,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings
        self._launcher = launcher or select_launcher()
        self._client = client
        self._allocator = allocator
        self._http_client = http_client

    @property
    def settings(self) -> LoginSettings:
        return self._settings

    async def signin(
        self,
        authority: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> LoginResult:
        """Run one login and return its result.

        Args:
            authority: Provider base URL; overrides ``settings.authority``.
            cancel_event: Setting this event ends the wait for the browser
                with a timeout result.

        Returns:
            The :class:`~loopauth.models.LoginResult` for this attempt.

        Raises:
            ResourceError: If no loopback port could be allocated.
            BindError: If the listener could not bind its port.
            DiscoveryError: If the provider metadata could not be loaded.
            InvalidUsageError: If no authority is configured.
        """
        settings = self._settings
        if authority is not None:
            settings = settings.model_copy(update={"authority": authority})

        async with self._http_scope() as http:
            client = self._client or OidcClient(settings, http)

            port = settings.port or self._allocator()
            redirect_uri = redirect_uri_for(port, settings.callback_path)
            state = await client.prepare_login(redirect_uri)

            config = ListenerConfig(
                port=port,
                path_suffix=settings.callback_path,
                timeout=settings.timeout,
                grace_delay=settings.grace_delay,
            )
            async with CallbackListener(config) as listener:
                self._open_browser(state.start_url)
                outcome = await listener.wait_for_callback(cancel_event=cancel_event)

            return await self._complete(client, outcome, state)

    def _open_browser(self, url: str) -> None:
        try:
            self._launcher.open(url)
        except BrowserLaunchError as exc:
            logger.warning("%s. Open this URL to continue: %s", exc, url)
        else:
            logger.debug("Browser opened for %s", url)

    async def _complete(
        self,
        client: OidcClient,
        outcome: CallbackOutcome,
        state: AuthorizeState,
    ) -> LoginResult:
        if outcome.is_success and outcome.payload is not None:
            return await client.process_response(outcome.payload, state)
        if outcome.kind is OutcomeKind.TIMEOUT:
            return LoginResult.failure(LoginResultType.TIMEOUT, outcome.reason or "Timed out.")
        if outcome.kind is OutcomeKind.EMPTY_RESPONSE:
            return LoginResult.failure(LoginResultType.UNKNOWN_ERROR, "Empty response.")
        return LoginResult.failure(
            LoginResultType.UNKNOWN_ERROR, outcome.reason or "Invalid callback request."
        )

    @asynccontextmanager
    async def _http_scope(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True) as http:
            yield http


async def signin(authority: Optional[str] = None, **overrides: Any) -> LoginResult:
    """Resolve settings and run a single login with the platform browser.

    Keyword arguments override individual
    :class:`~loopauth.models.LoginSettings` fields on top of the
    environment and the settings file.
    """
    from loopauth.config import resolve_settings

    settings = resolve_settings(authority=authority, **overrides)
    return await LoginFlow(settings).signin()
