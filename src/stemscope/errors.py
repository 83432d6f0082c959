"""
Exception hierarchy for the processing engine.

Parameter sanitizing never raises. These errors cover the cases that the
caller has to know about: audio that cannot be decoded and renders that
have nothing to work with.
"""


class StemscopeError(Exception):
    """Base class for all engine errors."""


class DecodeError(StemscopeError):
    """Raised when an encoded audio blob or file cannot be decoded."""


class RenderError(StemscopeError):
    """Raised when a mixdown cannot be produced."""


class NoActiveLayersError(RenderError):
    """Raised when every layer of a render request is muted or missing."""
