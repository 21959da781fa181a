"""Exception hierarchy for ledger, pipeline and decision-source failures."""

from enum import Enum


class TradingArenaError(Exception):
    """Base class for all trading-arena errors."""


class NotFoundError(TradingArenaError):
    """A portfolio, trade, agent or report does not exist."""


class TradeRejectedError(TradingArenaError):
    """A business rule refused a trade. Nothing was applied."""


class InsufficientFundsError(TradeRejectedError):
    pass


class InsufficientPositionError(TradeRejectedError):
    pass


class RiskLimitError(TradeRejectedError):
    pass


class ValidationError(TradingArenaError):
    """An external payload failed schema validation."""


class ServiceErrorKind(str, Enum):
    NETWORK = "network"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    INVALID_REQUEST = "invalid_request"
    SERVER = "server"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


NON_RETRYABLE = {ServiceErrorKind.AUTH, ServiceErrorKind.INVALID_REQUEST}


class ExternalServiceError(TradingArenaError):
    """A call to the decision source failed."""

    def __init__(self, kind: ServiceErrorKind, message: str, provider: str = ""):
        super().__init__(message)
        self.kind = kind
        self.provider = provider

    @property
    def retryable(self) -> bool:
        return self.kind not in NON_RETRYABLE

    def __str__(self) -> str:
        prefix = f"{self.provider} " if self.provider else ""
        return f"{prefix}{self.kind.value}: {super().__str__()}"
