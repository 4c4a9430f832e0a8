"""System browser launching.

The login flow only needs one capability from the desktop: "open this URL
in the user's default browser". :class:`BrowserLauncher` is that
capability; the concrete launchers below implement it per platform and
:func:`select_launcher` picks one once, at startup, so the flow itself
never branches on the operating system.

See Also:
    :class:`loopauth.flow.LoginFlow`, which calls :meth:`BrowserLauncher.open`.
"""

from __future__ import annotations

import logging
import platform
import subprocess
import webbrowser
from abc import ABC, abstractmethod
from typing import Optional

from loopauth.exceptions import BrowserLaunchError

logger = logging.getLogger(__name__)


class BrowserLauncher(ABC):
    """Opens a URL in the end user's default web browser.

    Implementations return once the browser process has been asked to
    open the page; they do not wait for the page to load. Failures are
    raised as :class:`~loopauth.exceptions.BrowserLaunchError` and are
    never retried.
    """

    @abstractmethod
    def open(self, url: str) -> None:
        """Open *url* in the system browser.

        Raises:
            BrowserLaunchError: If the browser could not be started.
        """
        ...


class _CommandLauncher(BrowserLauncher):
    """Launches the browser through an external command."""

    @abstractmethod
    def command(self, url: str) -> list[str]:
        """Return the argv that opens *url*."""
        ...

    def open(self, url: str) -> None:
        args = self.command(url)
        logger.debug("Launching browser: %s", args[0])
        try:
            subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **self._popen_options(),
            )
        except OSError as exc:
            raise BrowserLaunchError(f"Could not launch browser with {args[0]!r}: {exc}") from exc

    def _popen_options(self) -> dict[str, object]:
        return {}


class WindowsLauncher(_CommandLauncher):
    """Uses ``cmd /c start``.

    ``cmd`` treats ``&`` as a command separator, so it is escaped as
    ``^&`` to keep multi-parameter query strings intact.
    """

    def command(self, url: str) -> list[str]:
        return ["cmd", "/c", "start", url.replace("&", "^&")]

    def _popen_options(self) -> dict[str, object]:
        # CREATE_NO_WINDOW only exists on Windows builds of subprocess.
        return {"creationflags": getattr(subprocess, "CREATE_NO_WINDOW", 0)}


class LinuxLauncher(_CommandLauncher):
    """Uses ``xdg-open``."""

    def command(self, url: str) -> list[str]:
        return ["xdg-open", url]


class MacLauncher(_CommandLauncher):
    """Uses ``open``."""

    def command(self, url: str) -> list[str]:
        return ["open", url]


class WebbrowserLauncher(BrowserLauncher):
    """Falls back to the standard library :mod:`webbrowser` module."""

    def open(self, url: str) -> None:
        try:
            opened = webbrowser.open(url)
        except webbrowser.Error as exc:
            raise BrowserLaunchError(f"Could not launch browser: {exc}") from exc
        if not opened:
            raise BrowserLaunchError("No runnable browser was found")


_LAUNCHERS: dict[str, type[BrowserLauncher]] = {
    "Windows": WindowsLauncher,
    "Linux": LinuxLauncher,
    "Darwin": MacLauncher,
}


def select_launcher(system: Optional[str] = None) -> BrowserLauncher:
    """Return the launcher for *system* (defaults to the running platform).

    Args:
        system: A :func:`platform.system` value such as ``"Linux"``.

    Returns:
        A platform launcher, or :class:`WebbrowserLauncher` for
        platforms without a dedicated one.
    """
    system = system or platform.system()
    launcher_cls = _LAUNCHERS.get(system, WebbrowserLauncher)
    return launcher_cls()
