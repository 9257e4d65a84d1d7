"""Tests for the user-input parsers shared by the CLI and the HTTP API."""

from decimal import Decimal

import pytest

from innkeeper.adapters.serialization import parse_decimal, parse_int, parse_unit_request
from innkeeper.core.errors import InvalidArgumentError
from innkeeper.core.models import AccommodationType

UNIT_DATA = {
    "number_of_rooms": "3",
    "accommodation_type": "HOME",
    "floor": 0,
    "base_price": 120.5,
    "description": "Cabin",
}


class TestParseDecimal:
    @pytest.mark.parametrize(
        "value, expected",
        [("19.99", Decimal("19.99")), (5, Decimal("5")), (0.1, Decimal("0.1"))],
    )
    def test_accepts_numbers_and_numeric_strings(self, value, expected: Decimal) -> None:
        assert parse_decimal(value, "price") == expected

    @pytest.mark.parametrize(
        "value", ["NaN", "sNaN", "Infinity", "-inf", float("nan"), None, True, "ten", [1]]
    )
    def test_rejects_unusable_values(self, value) -> None:
        with pytest.raises(ValueError, match="price"):
            parse_decimal(value, "price")


class TestParseInt:
    def test_accepts_ints_and_digit_strings(self) -> None:
        assert parse_int(4, "floor") == 4
        assert parse_int("-1", "floor") == -1

    @pytest.mark.parametrize("value", [None, 2.5, True, "2.5", "two", {}])
    def test_rejects_everything_else(self, value) -> None:
        with pytest.raises(ValueError, match="floor"):
            parse_int(value, "floor")


class TestParseUnitRequest:
    def test_builds_request(self) -> None:
        request = parse_unit_request(UNIT_DATA)

        assert request.number_of_rooms == 3
        assert request.accommodation_type == AccommodationType.HOME
        assert request.base_price == Decimal("120.5")

    def test_missing_field_raises_key_error(self) -> None:
        data = {k: v for k, v in UNIT_DATA.items() if k != "base_price"}
        with pytest.raises(KeyError):
            parse_unit_request(data)

    def test_domain_validation_still_applies(self) -> None:
        with pytest.raises(InvalidArgumentError):
            parse_unit_request({**UNIT_DATA, "base_price": "-1"})
