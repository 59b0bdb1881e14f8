"""Error types surfaced to the HTTP boundary."""

from __future__ import annotations


class ConfigurationMissing(RuntimeError):
    """Raised when a setting required to serve traffic is not configured."""


class InvalidInput(ValueError):
    """Raised for caller mistakes such as a blank query or an empty selection."""
