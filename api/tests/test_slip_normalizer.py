import json
import sys
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from slipparser.parsers.slip_normalizer import (
    BatchItem,
    InvalidSlipInput,
    SlipNormalizer,
    SlipState,
    normalize_slip,
)
from slip_samples import BBL, KRUNGSRI, SCB_EN, SCB_EN_MARKUP, SCB_TH_QR, UNBRANDED


@pytest.fixture(scope="module")
def normalizer():
    return SlipNormalizer(reference_year=2025)


def test_scb_english_transfer(normalizer):
    rec = normalizer.normalize(SCB_EN)
    assert rec.bank_from == "SCB"
    assert rec.bank_to == ""
    assert rec.status == "Successful transfer"
    assert rec.date_time_text == "02 Sep 2025 - 09:35"
    assert rec.date_time_iso == "2025-09-02T09:35:00+07:00"
    assert rec.sender.name == "นาย พสุพล บุญแสน"
    assert rec.sender.account_number == "xxx-xxx451-4"
    assert rec.recipient.name == "PASUPOL BUNSA"
    assert rec.recipient.account_number == "x-6743"
    assert rec.amount == 1
    assert rec.fee == 0
    assert rec.currency == "THB"
    assert rec.transaction_reference == "2025090277mVUbbV49mBjwz9j"
    assert rec.reference_number == ""


def test_scb_thai_qr_payment_is_merchant(normalizer):
    rec = normalizer.normalize(SCB_TH_QR)
    assert rec.bank_from == "SCB"
    assert rec.date_time_iso == "2025-09-01T08:36:00+07:00"
    assert rec.status == "จ่ายเงินสำเร็จ"
    assert rec.recipient.name == "QR Payment at BTS"
    assert rec.recipient.biller_id == "010753600031501"
    assert rec.recipient.store_code == "KB000001525759"
    assert rec.recipient.transaction_code == "APIC17566905442863UW"
    assert rec.recipient.account_number == ""
    assert rec.bank_to == ""
    assert rec.amount == Decimal("25.00")
    assert rec.transaction_reference == "202509012QUQAMKcPYQwQyShc"


def test_bbl_buddhist_two_digit_year_and_reference_precedence(normalizer):
    rec = normalizer.normalize(BBL)
    assert rec.bank_from == "BBL"
    assert rec.bank_to == "SCB"
    assert rec.date_time_text == "22 ส.ค. 68, 13:21"
    assert rec.date_time_iso == "2025-08-22T13:21:00+07:00"
    assert rec.sender.name == "นาย พสุพล"
    assert rec.sender.account_number == "521-4-xxxx475"
    assert rec.recipient.name == "นาย พสุพล บุญแสน"
    assert rec.recipient.account_number == "020-2-xxxx514"
    assert rec.amount == Decimal("79.00")
    assert rec.transaction_reference == "390595"
    assert rec.reference_number == "2025082213214324009232008"
    assert rec.reference_code == ""


def test_krungsri_unlabeled_parties_and_three_references(normalizer):
    rec = normalizer.normalize(KRUNGSRI)
    assert rec.bank_from == "Krungsri"
    assert rec.bank_to == ""
    assert rec.date_time_iso == "2025-08-30T12:11:36+07:00"
    assert rec.sender.name == "PASUPOL BUNSA"
    assert rec.sender.account_number == "XXX-1-68674-X"
    assert rec.recipient.name == "บมจ.อยุธยา แคปปิตอล ออโต้ ลีส"
    assert rec.recipient.account_number == "XXX-0-15191-X"
    assert rec.amount == Decimal("3500.00")
    assert rec.transaction_reference == "2000122774887"
    assert rec.reference_number == "0311915695287"
    assert rec.reference_code == "BAYM4534971496"


def test_time_on_its_own_line_after_the_date(normalizer):
    text = KRUNGSRI.replace("30 ส.ค. 2568 12:11:36", "30 ส.ค. 2568\n12:11:36")
    result = normalizer.normalize_with_meta(text)
    rec = result.record
    assert rec.date_time_iso == "2025-08-30T12:11:36+07:00"
    assert rec.date_time_text == "30 ส.ค. 2568 12:11:36"
    assert result.meta.date_confidence == "high"
    assert rec.sender.name == "PASUPOL BUNSA"
    assert rec.recipient.name == "บมจ.อยุธยา แคปปิตอล ออโต้ ลีส"


def test_two_character_given_name_is_kept(normalizer):
    rec = normalizer.normalize("SCB\nFROM SCB นาย สม ใจดี xxx-xxx451-4\nAMOUNT 1.00")
    assert rec.sender.name == "นาย สม ใจดี"
    assert rec.sender.account_number == "xxx-xxx451-4"


def test_unresolvable_bank_uses_generic_profile(normalizer):
    result = normalizer.normalize_with_meta(UNBRANDED)
    rec = result.record
    assert result.meta.profile == "generic"
    assert "bank_unresolved" in result.meta.warnings
    assert rec.bank_from == ""
    assert rec.amount == Decimal("150.00")
    assert rec.date_time_iso == "2025-08-15T10:30:00+07:00"
    assert rec.transaction_reference == "99887766"


def test_missing_fee_defaults_to_zero(normalizer):
    result = normalizer.normalize_with_meta(SCB_EN)
    assert result.record.fee == 0
    assert "field_not_found:fee" in result.meta.warnings


def test_ambiguous_date_keeps_verbatim_text(normalizer):
    text = "โอนเงินสำเร็จ\n15/08/68 10:30\nจำนวนเงิน 20.00"
    result = normalizer.normalize_with_meta(text)
    assert result.record.date_time_text == "15/08/68 10:30"
    assert result.record.date_time_iso == ""
    assert result.meta.date_confidence == "low"
    assert "date_ambiguous" in result.meta.warnings
    assert result.record.amount == Decimal("20.00")


def test_every_field_defaults_when_nothing_is_labelled(normalizer):
    out = normalizer.normalize("just some noise").to_dict()

    def _walk(value):
        assert value is not None
        if isinstance(value, dict):
            for v in value.values():
                _walk(v)

    _walk(out)
    assert out["amount"] == 0.0
    assert out["from"] == {"name": "", "account_number": ""}
    assert out["currency"] == "THB"


def test_markup_is_stripped_before_matching(normalizer):
    assert normalizer.normalize(SCB_EN_MARKUP).to_dict() == normalizer.normalize(SCB_EN).to_dict()


def test_normalize_is_idempotent(normalizer):
    first = json.dumps(normalizer.normalize(BBL, "bbl").to_dict(), ensure_ascii=False, sort_keys=True)
    second = json.dumps(normalizer.normalize(BBL, "bbl").to_dict(), ensure_ascii=False, sort_keys=True)
    assert first == second


@pytest.mark.parametrize("text", [SCB_EN, SCB_TH_QR, BBL, KRUNGSRI, UNBRANDED])
def test_iso_round_trips_with_bangkok_offset(normalizer, text):
    iso = normalizer.normalize(text).date_time_iso
    parsed = datetime.fromisoformat(iso)
    assert parsed.utcoffset() == timedelta(hours=7)
    assert parsed.isoformat() == iso
    assert iso.endswith("+07:00")


def test_bank_hint_overrides_detection(normalizer):
    result = normalizer.normalize_with_meta(SCB_EN, bank_hint="bbl")
    assert result.meta.profile == "bbl"
    assert result.record.bank_from == "BBL"


def test_bank_hint_by_alias(normalizer):
    result = normalizer.normalize_with_meta(UNBRANDED, bank_hint="ธนาคารกรุงศรีอยุธยา")
    assert result.meta.profile == "krungsri"


def test_unknown_hint_falls_back_to_detection(normalizer):
    result = normalizer.normalize_with_meta(SCB_EN, bank_hint="Some Other Bank")
    assert result.meta.profile == "scb"


def test_meta_reports_terminal_state(normalizer):
    meta = normalizer.normalize_with_meta(SCB_EN).meta
    assert meta.state is SlipState.NORMALIZED
    assert meta.date_confidence == "high"
    assert meta.to_dict()["state"] == "normalized"


@pytest.mark.parametrize("bad", [None, "", "   \n\t ", 123, b"SCB", "<div></div><br/>"])
def test_invalid_input_is_rejected(normalizer, bad):
    with pytest.raises(InvalidSlipInput):
        normalizer.normalize(bad)


def test_invalid_input_is_a_value_error():
    with pytest.raises(ValueError):
        normalize_slip("")


def test_batch_preserves_order_and_isolates_failures(normalizer):
    items = [
        BatchItem(id="a", text=SCB_EN, file_name="a.jpg"),
        BatchItem(id="b", text="   "),
        BatchItem(id="c", text=BBL, file_name="c.png"),
        BatchItem(id="d", text=KRUNGSRI),
    ]
    outcomes = normalizer.normalize_batch(items, max_workers=3)
    assert [o.id for o in outcomes] == ["a", "b", "c", "d"]
    assert [o.ok for o in outcomes] == [True, False, True, True]
    assert outcomes[1].error
    assert outcomes[0].file_name == "a.jpg"
    assert outcomes[2].result.record.bank_from == "BBL"
    assert outcomes[3].result.record.reference_code == "BAYM4534971496"


def test_batch_matches_single_normalization(normalizer):
    outcomes = normalizer.normalize_batch([BatchItem(id=str(i), text=t) for i, t in enumerate([SCB_TH_QR, BBL])])
    assert outcomes[0].result.record == normalizer.normalize(SCB_TH_QR)
    assert outcomes[1].result.record == normalizer.normalize(BBL)


def test_empty_batch():
    assert SlipNormalizer().normalize_batch([]) == []
