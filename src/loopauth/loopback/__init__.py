"""Loopback redirect machinery: ports, browser launching, and the callback endpoint.

Exports:
    :func:`allocate_port` -- pick a free port on ``127.0.0.1``.
    :class:`BrowserLauncher` / :func:`select_launcher` -- open the
    system browser.
    :class:`CallbackListener` -- the single-use endpoint that receives
    the authorization response.
    :class:`PendingCallback` -- the write-once cell behind it.
"""

from loopauth.loopback.browser import BrowserLauncher, select_launcher
from loopauth.loopback.listener import CallbackListener, ListenerState
from loopauth.loopback.pending import PendingCallback
from loopauth.loopback.ports import allocate_port

__all__ = [
    "BrowserLauncher",
    "CallbackListener",
    "ListenerState",
    "PendingCallback",
    "allocate_port",
    "select_launcher",
]
