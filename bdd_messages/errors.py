"""Exceptions raised while building and dispatching messages."""


class IdentityResolutionError(LookupError):
    """Raised when a record references an identity that was never registered."""


class MissingHookFixtureError(RuntimeError):
    """Raised when no fixture can serve as the context of a bound step."""


class AmbiguousHookFixtureError(RuntimeError):
    """Raised when several fixtures could serve as the context of a bound step."""
