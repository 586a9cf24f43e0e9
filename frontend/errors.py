from __future__ import annotations


class FrontendError(Exception):
    """Base class for errors raised while wiring the web application."""


class RegistrationError(FrontendError):
    """A filter or servlet could not be registered (e.g. duplicate name)."""


class InvalidPatternError(FrontendError, ValueError):
    pass


class IllegalStateError(FrontendError, RuntimeError):
    pass
