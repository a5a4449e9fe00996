"""Exception types shared across webpilot components."""
from __future__ import annotations


class WebpilotError(Exception):
    """Base class for every error raised by webpilot."""


class OracleParseError(WebpilotError):
    """The planning oracle answered with no extractable action."""

    def __init__(self, message: str, payload: object = None) -> None:
        super().__init__(message)
        self.payload = payload


class OracleCallError(WebpilotError):
    """The oracle service could not be reached or refused the request."""


class SessionStateError(WebpilotError):
    """An execution session was asked to leave a terminal status."""


class ControllerBusyError(WebpilotError):
    """A command was started while another one is still running."""


class HostUnavailableError(WebpilotError):
    """The browser host could not be reached or answered with an error."""
