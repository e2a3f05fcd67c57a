# eco_dispatch_api/errors.py
"""Error taxonomy shared by the scoring pipeline, the ledger and the HTTP layer."""


class DispatchError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(DispatchError):
    """Malformed or missing required input. Surfaced to the caller, never retried."""

    def __init__(self, message, field=None):
        super().__init__(message)
        self.message = message
        self.field = field


class UpstreamUnavailable(DispatchError):
    """Route store or cache backend unreachable or timed out.

    Never fatal: callers log it and fall through to the next tier.
    """

    def __init__(self, port, reason):
        super().__init__(f"{port} unavailable: {reason}")
        self.port = port
        self.reason = reason


class IntegrityError(DispatchError):
    """Ledger verification found a hash or link mismatch."""

    def __init__(self, index, reason):
        super().__init__(f"ledger block {index} failed verification: {reason}")
        self.index = index
        self.reason = reason
