"""Error taxonomy for the routing engine.

Only caller mistakes and fully exhausted fallback chains surface as
exceptions. A missing route is a normal outcome and is reported on the
result (see ``bridgeroute.models.NoRouteReason``); a suspended withdrawal
simply removes a candidate.
"""

from typing import Optional


class BridgeRouteError(Exception):
    """Base class for all routing engine errors."""

    pass


class InvalidInput(BridgeRouteError):
    """Unsupported venue/currency pair, non-positive amount, unknown strategy."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class UpstreamUnavailable(BridgeRouteError):
    """Every provider, the stale cache and the snapshot store failed for a key."""

    def __init__(self, key: str, detail: str = ""):
        message = f"Upstream unavailable for {key}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.key = key
        self.detail = detail


class ImplausibleValue(UpstreamUnavailable):
    """A provider returned a value outside its sanity bounds.

    Raised inside a provider attempt and handled exactly like an unavailable
    provider: the chain moves on to the next provider.
    """

    def __init__(self, key: str, value: float, lower: float, upper: float):
        super().__init__(key, f"value {value} outside plausible range [{lower}, {upper}]")
        self.value = value
        self.lower = lower
        self.upper = upper
