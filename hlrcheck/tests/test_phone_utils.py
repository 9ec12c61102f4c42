from hlrcheck.app.services.phone_utils import (
    normalize_phone_number,
    analyze_batch,
    analyze_numbers,
    get_cost_estimate,
    invalid_reason_text,
)


def test_normalize_russian_trunk_prefix():
    n = normalize_phone_number("8 (916) 123-45-67")
    assert n.is_valid
    assert n.normalized == "+79161234567"


def test_normalize_double_zero_prefix():
    n = normalize_phone_number("0049 151 1234 5678")
    assert n.is_valid
    assert n.normalized == "+4915112345678"


def test_normalize_adds_plus_for_long_numbers():
    assert normalize_phone_number("4915112345678").normalized == "+4915112345678"


def test_invalid_reasons():
    assert normalize_phone_number("   ").invalid_reason == "empty"
    assert normalize_phone_number("12345").invalid_reason == "too_short"
    assert normalize_phone_number("+1234567890123456").invalid_reason == "too_long"
    assert normalize_phone_number("+49151abc12345").invalid_reason == "contains_letters"
    assert normalize_phone_number("0000000000").invalid_reason == "all_zeros"
    assert normalize_phone_number("+1111111111").invalid_reason == "repeated_digits"


def test_reason_text():
    assert invalid_reason_text("too_short").startswith("Too short")
    assert invalid_reason_text(None) == ""
    assert invalid_reason_text("weird") == "weird"


def test_analyze_batch_splits_and_counts_savings():
    a = analyze_batch(["+4915112345678", "004915112345678", "123", "+4915112345671"])
    assert a.total_input == 4
    assert a.unique_valid == 2
    assert a.invalid_count == 1
    assert a.duplicate_count == 1
    assert a.duplicates == ["004915112345678"]
    # default cost 0.01 per lookup, two avoided lookups
    assert a.estimated_savings == 0.02

    d = a.to_dict()
    assert d["valid"] == ["+4915112345678", "+4915112345671"]
    assert d["invalid"][0]["reason"] == "too_short"


def test_analyze_numbers_counts_duplicates():
    out = analyze_numbers(["+4915112345678", "4915112345678", "", "abc", "abc"])
    assert out["total_input"] == 4
    assert out["unique_count"] == 2
    assert out["duplicate_count"] == 2
    assert {"number": "+4915112345678", "count": 2} in out["duplicates"]
    assert {"number": "abc", "count": 2} in out["duplicates"]


def test_cost_estimate_rounds_to_cents():
    est = get_cost_estimate(333)
    assert est["count"] == 333
    assert est["total_cost"] == 3.33
    assert est["currency"] == "EUR"
