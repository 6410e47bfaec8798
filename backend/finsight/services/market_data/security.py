"""
Validation and sanitization of market data.

Everything returned by an external provider passes through here before it
is written to the cache tables.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
import logging

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

# Valid stock symbol pattern: uppercase alphanumeric, dots, hyphens only
VALID_SYMBOL_PATTERN = re.compile(r"^[A-Z0-9\.\-]{1,10}$")


class SymbolValidationError(ValueError):
    """Raised when symbol validation fails."""


class PriceValidationError(ValueError):
    """Raised when price validation fails."""


def validate_symbol(symbol: Optional[str]) -> str:
    """
    Validate and normalise a ticker symbol.

    Args:
        symbol: Raw symbol input

    Returns:
        Upper-cased, stripped symbol

    Raises:
        SymbolValidationError: If symbol is empty or malformed
    """
    if symbol is None or not symbol.strip():
        raise SymbolValidationError("Symbol is required")

    symbol = symbol.strip().upper()

    if len(symbol) > 10:
        raise SymbolValidationError(f"Symbol too long: {len(symbol)} chars (max 10)")

    if not VALID_SYMBOL_PATTERN.match(symbol):
        raise SymbolValidationError(
            f"Invalid symbol format: {symbol}. "
            f"Only uppercase letters, numbers, dots, and hyphens allowed."
        )

    return symbol


def validate_price(price: Any, symbol: str = "") -> Decimal:
    """
    Validate a quoted price.

    Raises:
        PriceValidationError: If price is not a positive, plausible number
    """
    try:
        price = Decimal(str(price))
    except (InvalidOperation, ValueError) as e:
        raise PriceValidationError(f"Invalid price format for {symbol}: {e}")

    if not price.is_finite() or price <= 0:
        raise PriceValidationError(f"Price must be positive for {symbol}: {price}")

    if price > Decimal("10000000"):  # $10M per share
        raise PriceValidationError(f"Price suspiciously high for {symbol}: ${price}")

    # Cache column keeps 4 decimal places
    if price.as_tuple().exponent < -4:
        price = price.quantize(Decimal("0.0001"))

    return price


def to_decimal(value: Any, field: str = "") -> Optional[Decimal]:
    """Best-effort Decimal conversion for optional numeric vendor fields."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        # Yahoo modules wrap numbers as {"raw": 1.23, "fmt": "1.23"}
        value = value.get("raw")
        if value is None:
            return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning(f"Invalid {field}: {value!r}")
        return None
    if not result.is_finite():
        return None
    return result


def sanitize_text(text: Optional[str], max_length: int = 255) -> Optional[str]:
    """
    Sanitize text fields from external APIs.

    Strips markup and control characters, normalises whitespace and truncates.
    """
    if not text:
        return None

    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"[\x00-\x1F\x7F]", "", text)
    text = re.sub(r"[^\w\s\.\-&,\(\)']", "", text)
    text = " ".join(text.split())

    if len(text) > max_length:
        text = text[:max_length]

    return text.strip() or None


class ValidatedQuoteData(BaseModel):
    """
    Quote data with strict validation.

    All quotes from external APIs must pass through this model before they
    are stored in the price cache.
    """

    symbol: str
    price: Decimal
    name: Optional[str] = None
    change_percent: Optional[Decimal] = None

    @field_validator("symbol")
    @classmethod
    def validate_symbol_field(cls, v):
        return validate_symbol(v)

    @field_validator("price", mode="before")
    @classmethod
    def validate_price_field(cls, v):
        return validate_price(v)

    @field_validator("name")
    @classmethod
    def validate_text_fields(cls, v):
        return sanitize_text(v)

    @field_validator("change_percent", mode="before")
    @classmethod
    def validate_change_percent(cls, v):
        """Round to the 2 places the cache keeps; drop implausible values."""
        decimal_val = to_decimal(v, "change_percent")
        if decimal_val is None:
            return None
        if abs(decimal_val) > Decimal("100000"):
            logger.warning(f"Suspiciously large change_percent: {v}")
            return None
        return decimal_val.quantize(Decimal("0.01"))


def validate_quote_response(raw_data: dict, symbol: str) -> ValidatedQuoteData:
    """
    Validate quote data from external API.

    Raises:
        PriceValidationError: If validation fails
    """
    if (raw_data.get("symbol") or "").upper() != symbol.upper():
        logger.warning(f"Symbol mismatch: expected {symbol}, got {raw_data.get('symbol')}")
        raw_data["symbol"] = symbol

    try:
        return ValidatedQuoteData(**raw_data)
    except ValueError as e:
        # pydantic.ValidationError subclasses ValueError
        raise PriceValidationError(f"Invalid quote data for {symbol}: {e}")
