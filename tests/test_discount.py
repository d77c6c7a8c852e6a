import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.discount import (
    parse_amount,
    parse_declared_percentage,
    parse_price,
    resolve_discount,
    round_half_up,
)


class TestHelpers:
    def test_parse_price(self):
        assert parse_price("1,299.50") == 1299.5
        assert parse_price(" 80 ") == 80.0
        assert parse_price("abc") is None
        assert parse_price(None) is None
        assert parse_price("nan") is None

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(12.5) == 13
        assert round_half_up(12.49) == 12

    def test_parse_amount(self):
        assert parse_amount("USD 80.00") == 80.0
        assert parse_amount(None) is None

    def test_parse_declared_percentage(self):
        assert parse_declared_percentage("25") == 25.0
        assert parse_declared_percentage("25%") == 25.0
        assert parse_declared_percentage("0") is None
        assert parse_declared_percentage("100") is None
        assert parse_declared_percentage("x") is None


class TestResolveDiscount:
    def test_computed_from_two_prices(self):
        result = resolve_discount("80", "USD", original_value="100")
        assert result.percentage == 20
        assert result.original_price == "USD 100.00"

    def test_computed_wins_over_declared(self):
        result = resolve_discount("80", "USD", original_value="100", declared_percentage="50")
        assert result.percentage == 20

    def test_declared_infers_original(self):
        result = resolve_discount("75", "USD", declared_percentage="25")
        assert result.percentage == 25
        assert result.original_price == "USD 100.00"

    def test_declared_rounds_half_up(self):
        result = resolve_discount("50", "GBP", declared_percentage="12.5")
        assert result.percentage == 13

    def test_no_discount_information(self):
        result = resolve_discount("50", "GBP")
        assert result.percentage == 0
        assert result.original_price is None

    def test_original_not_above_current_is_ignored(self):
        result = resolve_discount("100", "USD", original_value="100")
        assert result.percentage == 0

    def test_supplied_original_string_kept(self):
        result = resolve_discount("80", "USD", original_value="100", original_price="USD 100")
        assert result.original_price == "USD 100"

    def test_tiny_discount_rounds_to_zero(self):
        result = resolve_discount("99.9", "USD", original_value="100")
        assert result.percentage == 0
        assert result.original_price == "USD 100.00"
