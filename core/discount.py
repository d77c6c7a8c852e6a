"""Discount percentage and original-price resolution for fixed-price listings."""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class DiscountResolution:
    percentage: int
    original_price: str | None = None


def parse_price(value: str | float | None) -> float | None:
    if value is None:
        return None
    try:
        number = float(str(value).replace(",", "").strip())
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_price(currency: str, amount: float) -> str:
    return f"{currency} {amount:.2f}"


def parse_amount(display_price: str | None) -> float | None:
    """Numeric amount of a display price such as ``"USD 80.00"``."""
    if not display_price:
        return None
    return parse_price(display_price.strip().split(" ")[-1])


def parse_declared_percentage(declared: str | None) -> float | None:
    """Platform-declared percentage ("25", "25%") when strictly between 0 and 100."""
    if not declared:
        return None
    number = parse_price(declared.replace("%", ""))
    if number is None or not 0 < number < 100:
        return None
    return number


def resolve_discount(
    current_value: str | None,
    currency: str,
    original_value: str | None = None,
    declared_percentage: str | None = None,
    original_price: str | None = None,
) -> DiscountResolution:
    """Resolve the discount for a listing.

    A discount computed from two real prices always wins over the declared
    percentage. When only a declared percentage exists, the original price is
    inferred from it. ``original_price`` is the API-supplied display string and
    is kept whenever present.
    """
    current = parse_price(current_value)
    original = parse_price(original_value)

    if current is not None and original is not None and original > current > 0:
        percentage = round_half_up((original - current) / original * 100)
        if not original_price:
            original_price = format_price(currency, original)
        return DiscountResolution(percentage=percentage, original_price=original_price)

    declared = parse_declared_percentage(declared_percentage)
    if declared is not None:
        percentage = round_half_up(declared)
        if not original_price and current is not None and current > 0 and 0 < percentage < 100:
            inferred = current / (1 - percentage / 100)
            original_price = format_price(currency, inferred)
        return DiscountResolution(percentage=percentage, original_price=original_price)

    return DiscountResolution(percentage=0, original_price=original_price)
