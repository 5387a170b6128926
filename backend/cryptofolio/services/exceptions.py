# backend/cryptofolio/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
Whatever serves the engine over a transport maps them to responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── NotFoundError
    │   └── HoldingNotFoundError
    └── MarketDataError
        ├── ProviderUnavailableError
        ├── SymbolNotFoundError
        ├── RateLimitError
        └── PriceLookupTimeoutError

Data insufficiency is never an exception: calculators return None fields.
"""

from datetime import date


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when input validation fails.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "Holding")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class HoldingNotFoundError(NotFoundError):
    """Raised when a holding cannot be found."""

    def __init__(self, holding_id: int) -> None:
        self.holding_id = holding_id
        super().__init__(
            f"Holding {holding_id} not found",
            resource_type="Holding",
            resource_id=holding_id,
        )


# =============================================================================
# MARKET DATA (PRICE ORACLE) ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    Base exception for price oracle failures.

    The analytics engine treats every MarketDataError as "no price":
    valuation falls back to cost basis, benchmarks report None.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(MarketDataError):
    """
    Raised when the price provider is temporarily unavailable.

    Examples:
    - Network timeout
    - Server errors (500, 502, 503)

    This is a retryable error.
    """

    def __init__(self, provider: str, reason: str) -> None:
        message = f"Provider '{provider}' is unavailable: {reason}"
        super().__init__(message, provider=provider)
        self.reason = reason


class SymbolNotFoundError(MarketDataError):
    """
    Raised when a token symbol cannot be mapped to a provider coin id.

    This is NOT a retryable error.
    """

    def __init__(self, symbol: str, provider: str) -> None:
        message = f"Symbol '{symbol}' not found by {provider}"
        super().__init__(message, provider=provider)
        self.symbol = symbol


class RateLimitError(MarketDataError):
    """
    Raised when the provider's rate limit has been exceeded.

    This is a retryable error (with backoff).

    Attributes:
        retry_after: Seconds to wait before retrying (if provided by API)
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


class PriceLookupTimeoutError(MarketDataError):
    """
    Raised when a single price lookup exceeds the engine's time bound.

    Attributes:
        symbol: Token symbol being priced
        lookup_date: Date requested (None for current prices)
        timeout: Bound that was exceeded, in seconds
    """

    def __init__(self, symbol: str, timeout: float, lookup_date: date | None = None) -> None:
        self.symbol = symbol
        self.lookup_date = lookup_date
        self.timeout = timeout
        when = f" on {lookup_date}" if lookup_date else ""
        super().__init__(f"Price lookup for {symbol}{when} timed out after {timeout}s")


__all__ = [
    # Base
    "ServiceError",
    # Validation
    "ValidationError",
    # Not Found
    "NotFoundError",
    "HoldingNotFoundError",
    # Market Data
    "MarketDataError",
    "ProviderUnavailableError",
    "SymbolNotFoundError",
    "RateLimitError",
    "PriceLookupTimeoutError",
]
