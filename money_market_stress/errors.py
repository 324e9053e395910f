"""Exception taxonomy shared by the data layer and the HTTP boundary."""


class MarketStressError(Exception):
    """Base class for all money_market_stress errors."""


class ProviderUnavailable(MarketStressError):
    """An upstream provider timed out, failed in transport or sent a malformed payload."""

    def __init__(self, provider: str, series_id: str, reason: str):
        self.provider = provider
        self.series_id = series_id
        self.reason = reason
        super().__init__(f"{provider} unavailable for {series_id}: {reason}")


class InvalidInput(MarketStressError):
    """A request parameter failed validation at the boundary."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)
