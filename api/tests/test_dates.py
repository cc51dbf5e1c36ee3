import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from slipparser.parsers.dates import find_date_text, normalize_date, parse_iso
from slipparser.parsers.policy_loader import load_policy


@pytest.fixture(scope="module")
def profiles():
    policy = load_policy()
    return {name: policy.profile(name) for name in ("scb", "bbl", "krungsri", "generic")}


def test_english_month_with_time(profiles):
    res = normalize_date("02 Sep 2025 - 09:35", profiles["scb"], reference_year=2025)
    assert res.iso == "2025-09-02T09:35:00+07:00"
    assert res.confidence == "high"


def test_buddhist_era_four_digit_year(profiles):
    res = normalize_date("30 ส.ค. 2568 12:11:36", profiles["krungsri"], reference_year=2025)
    assert res.iso == "2025-08-30T12:11:36+07:00"


def test_buddhist_era_two_digit_year(profiles):
    res = normalize_date("22 ส.ค. 68, 13:21", profiles["bbl"], reference_year=2025)
    assert res.iso == "2025-08-22T13:21:00+07:00"


def test_thai_month_without_dots(profiles):
    res = normalize_date("5 มีค 2568 7:05 น.", profiles["bbl"], reference_year=2025)
    assert res.iso == "2025-03-05T07:05:00+07:00"


def test_thai_full_month_name(profiles):
    res = normalize_date("1 มกราคม 2568", profiles["generic"], reference_year=2025)
    assert res.iso == "2025-01-01T00:00:00+07:00"


def test_march_is_not_read_as_january(profiles):
    assert normalize_date("9 มี.ค. 68", profiles["bbl"]).iso.startswith("2025-03-09")
    assert normalize_date("9 ม.ค. 68", profiles["bbl"]).iso.startswith("2025-01-09")


def test_thai_digits(profiles):
    res = normalize_date("๒๒ ส.ค. ๖๘ ๑๓:๒๑", profiles["bbl"], reference_year=2025)
    assert res.iso == "2025-08-22T13:21:00+07:00"


def test_date_only_is_medium_confidence(profiles):
    res = normalize_date("01 ก.ย. 2568", profiles["scb"], reference_year=2025)
    assert res.iso == "2025-09-01T00:00:00+07:00"
    assert res.confidence == "medium"


def test_two_digit_english_year_defaults_to_gregorian(profiles):
    res = normalize_date("02 Sep 25 09:35", profiles["scb"], reference_year=2025)
    assert res.iso == "2025-09-02T09:35:00+07:00"


def test_numeric_two_digit_year_follows_profile(profiles):
    assert normalize_date("02/09/25 09:35", profiles["scb"]).iso == "2025-09-02T09:35:00+07:00"
    assert normalize_date("02/09/68 09:35", profiles["bbl"]).iso == "2025-09-02T09:35:00+07:00"


def test_numeric_two_digit_year_is_ambiguous_for_generic(profiles):
    res = normalize_date("02/09/68 09:35", profiles["generic"])
    assert res.iso == ""
    assert res.confidence == "low"


def test_gregorian_year_is_kept(profiles):
    res = normalize_date("15/08/2025 10:30", profiles["generic"], reference_year=2025)
    assert res.iso == "2025-08-15T10:30:00+07:00"


@pytest.mark.parametrize("text", ["", "hello", "31 ก.พ. 2568", "99/99/2568", "12 Foo 2025"])
def test_unparseable_dates_degrade_to_low(profiles, text):
    res = normalize_date(text, profiles["generic"], reference_year=2025)
    assert res.iso == ""
    assert res.confidence == "low"


def test_find_date_text_is_verbatim(profiles):
    text = "รายการสำเร็จ\n22 ส.ค. 68, 13:21\nจำนวนเงิน 79.00 THB"
    assert find_date_text(text, profiles["bbl"]) == "22 ส.ค. 68, 13:21"


def test_find_date_text_does_not_read_amount_lines_as_time(profiles):
    text = "01 ก.ย. 2568\n25.00"
    assert find_date_text(text, profiles["scb"]) == "01 ก.ย. 2568"


def test_parse_iso_components(profiles):
    res = normalize_date("22 ส.ค. 68, 13:21", profiles["bbl"])
    parts = parse_iso(res.iso)
    assert parts["year"] == 2025
    assert parts["hour"] == 13
    assert parts["utcoffset_hours"] == 7


def test_time_on_the_next_line(profiles):
    text = "30 ส.ค. 2568\n12:11:36\nPASUPOL BUNSA"
    assert find_date_text(text, profiles["krungsri"]) == "30 ส.ค. 2568 12:11:36"
    res = normalize_date(text, profiles["krungsri"], reference_year=2025)
    assert res.iso == "2025-08-30T12:11:36+07:00"
    assert res.confidence == "high"


def test_next_line_amount_is_not_a_time(profiles):
    res = normalize_date("01 ก.ย. 2568\n12.00 บาท", profiles["scb"], reference_year=2025)
    assert res.iso == "2025-09-01T00:00:00+07:00"
    assert res.confidence == "medium"
