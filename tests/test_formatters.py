from datetime import date, datetime

import pytest

from pharmabill.formatters import (
    format_currency,
    format_date,
    generate_number,
    number_to_words,
    parse_number_sequence,
)


def test_format_currency_groups_thousands():
    assert format_currency(1500) == "1\u202f500 Frcs CFA"
    assert format_currency(1234567) == "1\u202f234\u202f567 Frcs CFA"
    assert format_currency(0) == "0 Frcs CFA"


def test_format_currency_custom_suffix():
    assert format_currency(250, "F") == "250 F"
    assert format_currency(250, "") == "250"


def test_format_date():
    assert format_date(date(2024, 3, 1)) == "01/03/2024"
    assert format_date(datetime(2024, 12, 31, 18, 5)) == "31/12/2024"
    assert format_date("2024-07-14") == "14/07/2024"


def test_generate_number_is_count_plus_one():
    assert generate_number("PRO", 0, 2024) == "PRO-2024-00001"
    assert generate_number("INV", 11, 2024) == "INV-2024-00012"


def test_generate_number_defaults_to_current_year():
    assert generate_number("INV", 0).startswith(f"INV-{date.today().year}-")


def test_parse_number_sequence():
    assert parse_number_sequence("INV-2024-00012", "INV", 2024) == 12
    assert parse_number_sequence("inv-2024-00003", "INV", 2024) == 3
    assert parse_number_sequence("INV-2023-00012", "INV", 2024) is None
    assert parse_number_sequence("FAC-001", "INV", 2024) is None


@pytest.mark.parametrize(
    "amount, words",
    [
        (0, "Zéro"),
        (1, "Un"),
        (16, "Seize"),
        (17, "Dix-sept"),
        (21, "Vingt-et-un"),
        (22, "Vingt-deux"),
        (70, "Soixante-dix"),
        (71, "Soixante-et-onze"),
        (72, "Soixante-douze"),
        (80, "Quatre-vingts"),
        (81, "Quatre-vingt-un"),
        (90, "Quatre-vingt-dix"),
        (91, "Quatre-vingt-onze"),
        (99, "Quatre-vingt-dix-neuf"),
        (100, "Cent"),
        (180, "Cent quatre-vingts"),
        (200, "Deux cents"),
        (201, "Deux cent un"),
        (1000, "Mille"),
        (1500, "Mille cinq cents"),
        (2021, "Deux mille vingt-et-un"),
        (80000, "Quatre-vingt mille"),
        (200000, "Deux cent mille"),
        (1000000, "Un million"),
        (2500000, "Deux millions cinq cent mille"),
        (80000000, "Quatre-vingts millions"),
        (1000000000, "Un milliard"),
        (3000000001, "Trois milliards un"),
    ],
)
def test_number_to_words(amount, words):
    assert number_to_words(amount) == words


def test_number_to_words_rejects_negative():
    with pytest.raises(ValueError):
        number_to_words(-5)
