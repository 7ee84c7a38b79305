from __future__ import annotations


class MonitorError(RuntimeError):
    """Base class for failures raised by the monitor core."""


class AuthRequired(MonitorError):
    """Raised when a provider rejects (or was never given) the caller's credential."""


class UpstreamUnavailable(MonitorError):
    """Raised when a provider is unreachable, unconfigured or answers with a non-2xx."""


class InputRejected(MonitorError, ValueError):
    """Raised when a required input is missing."""
