"""
Exception taxonomy for the automation engine.

Only ``StoreUnavailableError`` is meant to escape the engine. Everything else
is caught at the rule or action boundary and recorded in an ExecutionReport.
"""

from __future__ import annotations


class AutocordError(Exception):
    """Base class for all engine errors."""

    kind = "error"


class ConfigurationError(AutocordError, ValueError):
    """A rule refers to something that cannot work: bad regex, unknown role, unknown type."""

    kind = "configuration"


class PlatformPermissionError(AutocordError):
    """The platform refused a role or moderation mutation."""

    kind = "permission"


class TransientDeliveryError(AutocordError):
    """A message, embed or DM could not be delivered. Never retried."""

    kind = "delivery"


class StoreUnavailableError(AutocordError):
    """The state store could not complete the operation in progress."""

    kind = "store"
