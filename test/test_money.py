import pytest

from taxi_ledger.money import (
    calculate_net_total,
    calculate_tax_amount,
    from_comma_separated,
    parse_int,
    to_comma_separated,
)


def test_to_comma_separated():
    assert to_comma_separated(1234567) == "1,234,567"
    assert to_comma_separated("12ab34") == "1,234"
    assert to_comma_separated("") == ""


@pytest.mark.parametrize(
    "raw, expected",
    [(' "2,800" ', 2800), ("12.5", 12), ("-300", -300), ("abc", 0), (None, 0), (7.9, 7)],
)
def test_parse_int(raw, expected):
    assert parse_int(raw) == expected


@pytest.mark.parametrize("amount", [0, 999, 1000, 48000, 1234567])
def test_comma_separated_amount_reads_back(amount):
    assert from_comma_separated(to_comma_separated(amount)) == amount


def test_net_total_rounds_to_nearest_ten():
    assert calculate_net_total(9900) == 9000
    assert calculate_net_total(1000) == 910
    assert calculate_tax_amount(1000) == 90
