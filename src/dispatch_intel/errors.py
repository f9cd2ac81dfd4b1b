class DispatchIntelError(Exception):
    """Base class for errors raised by the dispatch intelligence engine."""


class ValidationError(DispatchIntelError, ValueError):
    """Caller input does not meet the minimum content needed to score it."""


class UpstreamUnavailable(DispatchIntelError):
    """A signal provider or incident store failed or timed out."""
