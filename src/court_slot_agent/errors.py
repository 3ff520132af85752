"""Exception types raised by the court slot agent."""

from __future__ import annotations


class CourtAgentError(Exception):
    """Base class for errors surfaced to callers."""


class InvalidRequestError(CourtAgentError, ValueError):
    """Raised when request parameters are missing or malformed."""


class BrowserLaunchError(CourtAgentError, RuntimeError):
    """Raised when the shared Chromium instance cannot be started."""
