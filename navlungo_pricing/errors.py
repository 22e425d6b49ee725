"""
Navlungo Errors

Only the login entry points raise these. The quote paths catch them and
return a failure envelope instead.
"""


class NavlungoError(Exception):
    """Base class for all Navlungo pricing errors."""


class ConfigurationError(NavlungoError):
    """Required configuration (e.g. portal credentials) was not supplied."""


class AuthenticationError(NavlungoError):
    """Interactive login did not produce a credential."""


class LoginTimeoutError(AuthenticationError):
    """The human did not complete the login within the allowed time."""


class LoginCancelledError(AuthenticationError):
    """The login wait was cancelled before the human completed it."""


class TokenExtractionError(AuthenticationError):
    """Login succeeded but no token was found in client-side storage."""
