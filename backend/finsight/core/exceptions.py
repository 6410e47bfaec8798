"""Domain errors raised by the valuation and caching services."""

from typing import Optional


class PortfolioError(Exception):
    """Base class for all portfolio domain errors."""

    code = "portfolio_error"


class HoldingValidationError(PortfolioError):
    """
    A caller error detected before any holding is mutated.

    These are recoverable: ``ValuationService.mutate_holding`` converts them
    into a failed ``MutationResult`` instead of letting them escape.
    """

    code = "validation_error"


class InvalidAmount(HoldingValidationError):
    """Change amount is non-numeric, non-positive or too precise for its class."""

    code = "invalid_amount"


class MissingSymbol(HoldingValidationError):
    """A symbol is required for the asset class but was not supplied."""

    code = "missing_symbol"


class InvalidSymbol(HoldingValidationError):
    """A symbol was supplied but is not a well-formed ticker."""

    code = "invalid_symbol"


class InvalidAssetClass(HoldingValidationError):
    code = "invalid_asset_class"


class InvalidDirection(HoldingValidationError):
    """Direction is neither ``add`` nor ``reduce``."""

    code = "invalid_direction"


class InsufficientBalance(HoldingValidationError):
    """A reduce would drive the holding quantity below zero."""

    code = "insufficient_balance"


class UpstreamUnavailable(PortfolioError):
    """An external market data call failed, timed out or returned no data."""

    code = "upstream_unavailable"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        timed_out: bool = False,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.timed_out = timed_out


class DataInconsistency(PortfolioError):
    """
    Two tables disagree about the same holding.

    Never auto-corrected; the current operation is aborted and the error is
    surfaced so an operator can repair the data.
    """

    code = "data_inconsistency"
