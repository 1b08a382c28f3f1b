"""
Exception types for Waitlist Alerts.

Only infrastructure failures (store or feed unreachable) are meant to
escape a run. Everything else is handled per unit or per agent group.
"""


class WaitlistAlertsError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(WaitlistAlertsError):
    """Required configuration is missing or malformed."""


class DatabaseError(WaitlistAlertsError):
    """A Supabase read or write failed."""


class FeedUnavailableError(WaitlistAlertsError):
    """The unit availability feed could not be fetched or decoded."""


class FeedRowError(WaitlistAlertsError):
    """A single feed row could not be mapped to a unit."""


class ValidationError(WaitlistAlertsError):
    """A request payload or entry failed validation."""


class PipelineError(WaitlistAlertsError):
    """A run could not start because its inputs were unavailable."""
