import pytest

from app.dto.phone_validations import clean_phone, normalize_phone, validate_country_code, validate_phone_number


@pytest.mark.parametrize("raw, expected", [
    ("+211900000001", "+211900000001"),
    ("0900000001", "+211900000001"),
    ("900000001", "+211900000001"),
    ("+211 900-000-001", "+211900000001"),
    ("(0) 900 000 001", "+211900000001"),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw, "+211") == expected


@pytest.mark.parametrize("raw", ["+211900000001", "0912345678", "912 345 678", "+971501234567", "00211900000001"])
def test_normalize_phone_is_idempotent(raw):
    once = normalize_phone(raw, "+211")
    assert normalize_phone(once, "+211") == once


def test_only_one_leading_zero_is_stripped():
    assert normalize_phone("00900000001", "+211") == "+2110900000001"


def test_clean_phone_keeps_digits_and_plus():
    assert clean_phone(" +211 (900) 000-001 ") == "+211900000001"
    assert clean_phone(None) == ""


@pytest.mark.parametrize("raw", ["12345", "+1234567890123456", "abcdefghijk", ""])
def test_validate_phone_number_rejects_bad_shapes(raw):
    with pytest.raises(ValueError):
        validate_phone_number(raw)


def test_validate_phone_number_returns_cleaned_value():
    assert validate_phone_number("+211 900 000 001") == "+211900000001"


def test_validate_country_code_adds_plus():
    assert validate_country_code("211") == "+211"
    with pytest.raises(ValueError):
        validate_country_code("+21100")
