"""Price display and validation helpers"""
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from pydantic import BaseModel

from domain.pricing import round_money
from domain.value_objects import PricingBreakdown, SeasonalAdjustment

MAX_PRICE = Decimal("1000000")

CURRENCY_SYMBOLS = {
    "DZD": "DA",
    "EUR": "€",
    "USD": "$",
    "CAD": "C$",
    "GBP": "£",
}

# symbol written after the amount
SUFFIX_SYMBOL_CURRENCIES = {"DZD"}


class PriceValidation(BaseModel):
    is_valid: bool
    error: Optional[str] = None


class BreakdownValidation(BaseModel):
    is_valid: bool
    errors: List[str] = []


def format_price(amount, currency: str, compact: bool = False) -> str:
    """Format an amount with its currency symbol, e.g. "€123.45" or "1,500.00 DA" """
    value = round_money(amount)
    sign = "-" if value < 0 else ""
    value = abs(value)

    if compact:
        text = f"{value.quantize(Decimal('1'), rounding=ROUND_HALF_UP):,}"
    else:
        text = f"{value:,.2f}"

    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol is None:
        return f"{sign}{text} {currency}"
    if currency in SUFFIX_SYMBOL_CURRENCIES:
        return f"{sign}{text} {symbol}"
    return f"{sign}{symbol}{text}"


def format_price_range(min_price, max_price, currency: str) -> Dict[str, str]:
    low = format_price(min_price, currency)
    high = format_price(max_price, currency)
    formatted = low if round_money(min_price) == round_money(max_price) else f"{low} - {high}"
    return {"min": low, "max": high, "formatted": formatted, "currency": currency}


def format_discounted_price(original_price, current_price, currency: str) -> Dict[str, str]:
    original = round_money(original_price)
    current = round_money(current_price)
    if original <= 0:
        raise ValueError("Original price must be greater than 0")

    discount = ((original - current) / original * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return {
        "current": format_price(current, currency),
        "original": format_price(original, currency),
        "discount": f"{discount}%",
        "savings": format_price(original - current, currency),
    }


def format_nightly_rate(amount, currency: str, compact: bool = False) -> str:
    return f"{format_price(amount, currency, compact=compact)}/night"


def format_nightly_rate_with_season(
    base_rate,
    day: date,
    seasonal_adjustments: List[SeasonalAdjustment],
    currency: str
) -> str:
    """Nightly rate for one date, naming the season when one applies"""
    for adjustment in seasonal_adjustments:
        if adjustment.date == day:
            return (
                f"{format_nightly_rate(adjustment.adjusted_rate, currency)} "
                f"({adjustment.season_name}, regular {format_price(base_rate, currency)})"
            )
    return format_nightly_rate(base_rate, currency)


def format_contextual_price(amount, currency: str, context: str = "detail") -> str:
    if context == "card":
        return format_price(amount, currency, compact=True)
    if context == "checkout":
        return f"{format_price(amount, currency)} {currency}"
    return format_price(amount, currency)


def format_price_summary(
    breakdown: PricingBreakdown,
    show_breakdown: bool = True,
    compact: bool = False
) -> str:
    currency = breakdown.currency
    total = f"Total: {format_price(breakdown.total, currency)}"
    if not show_breakdown:
        return total

    fees = breakdown.service_fee + breakdown.cleaning_fee
    night_label = "night" if breakdown.nights == 1 else "nights"
    parts = [
        f"{breakdown.nights} {night_label}: {format_price(breakdown.subtotal, currency)}",
        f"Fees: {format_price(fees, currency)}",
        f"Taxes: {format_price(breakdown.taxes, currency)}",
        total,
    ]
    return ", ".join(parts) if compact else " | ".join(parts)


# ==================== VALIDATION ====================

def _to_decimal(value) -> Optional[Decimal]:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return None
    number = Decimal(str(value))
    if not number.is_finite():
        return None
    return number


def validate_price(value) -> PriceValidation:
    number = _to_decimal(value)
    if number is None:
        return PriceValidation(is_valid=False, error="Price must be a valid number")
    if number < 0:
        return PriceValidation(is_valid=False, error="Price cannot be negative")
    if number > MAX_PRICE:
        return PriceValidation(is_valid=False, error=f"Price exceeds maximum of {MAX_PRICE:,}")
    return PriceValidation(is_valid=True)


def validate_price_range(min_price, max_price) -> PriceValidation:
    for value in (min_price, max_price):
        result = validate_price(value)
        if not result.is_valid:
            return result
    if _to_decimal(min_price) > _to_decimal(max_price):
        return PriceValidation(is_valid=False, error="Minimum price cannot be greater than maximum price")
    return PriceValidation(is_valid=True)


def validate_pricing_breakdown(breakdown: PricingBreakdown) -> BreakdownValidation:
    errors = []

    if breakdown.nights < 1:
        errors.append("Nights must be a positive integer")

    amounts = {
        "Subtotal": breakdown.subtotal,
        "Cleaning fee": breakdown.cleaning_fee,
        "Service fee": breakdown.service_fee,
        "Taxes": breakdown.taxes,
        "Total": breakdown.total,
    }
    for label, amount in amounts.items():
        if amount < 0:
            errors.append(f"{label} cannot be negative")

    expected = breakdown.subtotal + breakdown.cleaning_fee + breakdown.service_fee + breakdown.taxes
    if abs(breakdown.total - expected) > Decimal("0.01"):
        errors.append("Total amount does not match the sum of its components")

    return BreakdownValidation(is_valid=not errors, errors=errors)
