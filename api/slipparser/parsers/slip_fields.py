# api/slipparser/parsers/slip_fields.py
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Tuple

from .banks import canonical_bank_code, find_bank, is_bank_only
from .common import thai_digits_to_ascii
from .dates import find_date
from .labels import (
    AMOUNT,
    BILLER_ID,
    FEE,
    FROM,
    QR_CODE,
    REFERENCE,
    STATUS,
    STORE_CODE,
    TO,
    TRANSACTION_CODE,
    label_key,
)
from .policy_loader import BankProfile, SlipPolicy
from .record import Party, Payee
from .segmenter import Block, Segmentation

MASKED_ACCOUNT = re.compile(r"(?<![\w*])[0-9xX*]+(?:-[0-9xX*]+)+(?![\w*])")
_ISO_DATE = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$")
_PAREN = re.compile(r"\(([^()\n]*)\)")
_LOGO = re.compile(r"(?i)logo|โลโก้")
_THAI_ONLY = re.compile(r"^[\u0e00-\u0e7f]+$")
# vowel signs and tone marks never start a word
_THAI_MARK_START = re.compile(r"^[\u0e31\u0e33-\u0e3a\u0e47-\u0e4e]")
_TIME_ONLY = re.compile(r"^\d{1,2}[:.]\d{2}(?:[:.]\d{2})?(?:\s*น\.?)?$")
_MONEY = re.compile(r"\d[\d,]*(?:\.\d+)?")
_CURRENCY = re.compile(r"(?<![A-Za-z])(THB|USD|EUR|GBP|JPY|CNY|SGD|HKD|MYR|AUD|LAK|KHR|MMK|VND)(?![A-Za-z])")
_CODE_TOKEN = re.compile(r"[A-Za-z0-9][A-Za-z0-9\-]*")
_REFERENCE_TOKEN = re.compile(r"(?<![A-Za-z0-9])[A-Za-z0-9]{4,}(?![A-Za-z0-9])")
_EMV_QR = re.compile(r"(?<![0-9A-Za-z])000201[0-9A-Za-z.\-]{10,}")

# Sender/recipient preamble ends at the first of these labels.
_PREAMBLE_STOP = (AMOUNT, FEE, REFERENCE)


@dataclass(frozen=True)
class PartyInfo:
    name: str = ""
    account_number: str = ""
    bank: str = ""


@dataclass(frozen=True)
class ExtractedFields:
    status: str = ""
    sender: Party = Party()
    sender_bank: str = ""
    recipient: Payee = Payee()
    recipient_bank: str = ""
    amount: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    currency: str = "THB"
    references: Tuple[str, ...] = ()
    qr_code: str = ""
    missing: Tuple[str, ...] = ()


def find_masked_account(text: str) -> Optional[re.Match]:
    """First masked account token ("xxx-xxx451-4", "521-4-xxxx475")."""
    for m in MASKED_ACCOUNT.finditer(text or ""):
        token = m.group(0)
        if not any(ch.isdigit() for ch in token) or _ISO_DATE.match(token):
            continue
        if re.search(r"[xX*]", token) or token.count("-") >= 2:
            return m
    return None


def merge_thai_fragments(name: str) -> str:
    """
    Re-join Thai words OCR split apart and flatten the lines with spaces.

    A Thai fragment of one or two characters that ends a line is joined to
    the Thai word opening the next line ("ออ\\nโต้" -> "ออโต้"). A token that
    starts with a vowel sign or tone mark is joined to the Thai token before
    it. Short words inside a line ("นาย สม ใจดี") are left alone.
    """
    merged: List[str] = []
    wrapped = False
    for line in name.split("\n"):
        tokens = line.split()
        for idx, token in enumerate(tokens):
            joinable = merged and _THAI_ONLY.match(token) and _THAI_ONLY.match(merged[-1])
            if joinable and ((idx == 0 and wrapped) or _THAI_MARK_START.match(token)):
                merged[-1] += token
            else:
                merged.append(token)
        if tokens:
            wrapped = bool(_THAI_ONLY.match(tokens[-1])) and len(tokens[-1]) <= 2
    return " ".join(merged)


def _strip_decoration(line: str, policy: SlipPolicy) -> Tuple[str, str]:
    """Drop logo/bank parentheticals from a line; returns (line, bank code seen)."""
    bank = ""

    def _sub(m: re.Match) -> str:
        nonlocal bank
        inner = m.group(1)
        code = canonical_bank_code(inner, policy)
        if _LOGO.search(inner) or (code and is_bank_only(inner, policy)):
            bank = bank or code
            return " "
        return m.group(0)

    return _PAREN.sub(_sub, line), bank


def parse_party(text: str, policy: SlipPolicy) -> PartyInfo:
    bank = ""
    lines: List[str] = []
    for raw in (text or "").split("\n"):
        line, logo_bank = _strip_decoration(raw, policy)
        bank = bank or logo_bank
        line = " ".join(line.split())
        if not line:
            continue
        if is_bank_only(line, policy):
            bank = bank or canonical_bank_code(line, policy)
            continue
        lines.append(line)

    account = ""
    for idx, line in enumerate(lines):
        m = find_masked_account(line)
        if m:
            account = m.group(0)
            lines[idx] = " ".join((line[: m.start()] + " " + line[m.end() :]).split())
            break
    lines = [line for line in lines if line]

    name = ""
    if lines:
        name = lines[0]
        hit = find_bank(name, policy)
        if hit and hit.start == 0:
            bank = bank or hit.code
            name = name[hit.end :]
        name = merge_thai_fragments(name.strip(" \t:-/,"))
    return PartyInfo(name=name, account_number=account, bank=bank)


def _first_code(block: Optional[Block]) -> str:
    if block is None:
        return ""
    m = _CODE_TOKEN.search(block.text)
    return m.group(0) if m else ""


def extract_sender(seg: Segmentation, policy: SlipPolicy) -> Optional[PartyInfo]:
    block = seg.first(FROM)
    if block is None:
        return None
    return parse_party(seg.own_text(block), policy)


def extract_recipient(seg: Segmentation, policy: SlipPolicy) -> Optional[Tuple[Payee, str]]:
    """
    Recipient block -> (payee, bank code).

    A biller/store/transaction-code label inside the block makes it a
    merchant/QR payee: bank is "" and the account stays empty unless one is
    printed explicitly. Otherwise it is a peer transfer.
    """
    block = seg.first(TO)
    if block is None:
        return None
    party = parse_party(seg.own_text(block), policy)
    billers = {field: seg.within(block, field) for field in (BILLER_ID, STORE_CODE, TRANSACTION_CODE)}
    if any(billers.values()):
        payee = Payee(
            name=party.name,
            account_number=party.account_number,
            biller_id=_first_code(next(iter(billers[BILLER_ID]), None)),
            store_code=_first_code(next(iter(billers[STORE_CODE]), None)),
            transaction_code=_first_code(next(iter(billers[TRANSACTION_CODE]), None)),
        )
        return payee, ""
    return Payee(name=party.name, account_number=party.account_number), party.bank


def extract_unlabeled_parties(seg: Segmentation, profile: BankProfile, policy: SlipPolicy) -> List[PartyInfo]:
    """
    Pair name lines with masked-account lines ahead of the money/reference
    labels, for slips that print parties without FROM/TO labels.
    """
    preamble = seg.text_before(_PREAMBLE_STOP)
    label_starts = [b.start for b in seg.blocks if b.start < len(preamble)]

    kept: List[str] = []
    offset = 0
    for raw in preamble.split("\n"):
        line_start, line_end = offset, offset + len(raw)
        offset = line_end + 1
        if any(line_start <= pos <= line_end for pos in label_starts):
            continue
        line, _ = _strip_decoration(raw, policy)
        line = " ".join(line.split())
        if not line or _TIME_ONLY.match(line) or is_bank_only(line, policy) or find_date(line, profile):
            continue
        kept.append(line)

    parties: List[PartyInfo] = []
    names: List[str] = []
    for line in kept:
        m = find_masked_account(line)
        if m is None:
            names.append(line)
            continue
        rest = " ".join((line[: m.start()] + " " + line[m.end() :]).split())
        if rest:
            names.append(rest)
        parties.append(parse_party(merge_thai_fragments("\n".join(names)) + "\n" + m.group(0), policy))
        names = []
    return parties


def parse_money(text: str | None) -> Optional[Decimal]:
    """First amount in a block, without currency marks or thousands separators."""
    s = thai_digits_to_ascii(text or "")
    s = s.replace("฿", " ").replace("บาท", " ")
    m = _MONEY.search(s)
    if not m:
        return None
    try:
        return Decimal(m.group(0).replace(",", ""))
    except InvalidOperation:
        return None


def extract_currency(seg: Segmentation) -> str:
    for field in (AMOUNT, FEE):
        for block in seg.all(field):
            m = _CURRENCY.search(block.text)
            if m:
                return m.group(1)
    return "THB"


def reference_value(text: str) -> str:
    m = _REFERENCE_TOKEN.search(text or "")
    return m.group(0) if m else ""


def extract_references(seg: Segmentation, profile: BankProfile) -> Tuple[str, ...]:
    """
    Reference values ordered by the profile's label precedence, then by
    appearance. Slot 1 is the transaction reference, 2 and 3 secondary.
    """
    precedence = [label_key(p) for p in profile.reference_precedence]

    def _rank(item: Tuple[int, Block]) -> Tuple[int, int]:
        idx, block = item
        key = label_key(block.synonym)
        return (precedence.index(key) if key in precedence else len(precedence), idx)

    values: List[str] = []
    for _, block in sorted(enumerate(seg.all(REFERENCE)), key=_rank):
        value = reference_value(block.text)
        if value and value not in values:
            values.append(value)
    return tuple(values[:3])


def extract_qr_code(seg: Segmentation) -> str:
    block = seg.first(QR_CODE)
    if block is not None and block.text:
        return block.text.split()[0]
    m = _EMV_QR.search(seg.text)
    return m.group(0) if m else ""


def extract_status(seg: Segmentation) -> str:
    block = seg.first(STATUS)
    return " ".join(block.label.split()) if block else ""


def extract_fields(seg: Segmentation, profile: BankProfile, policy: SlipPolicy) -> ExtractedFields:
    missing: List[str] = []

    sender = extract_sender(seg, policy)
    recipient = extract_recipient(seg, policy)
    if sender is None and recipient is None and profile.unlabeled_parties:
        pairs = extract_unlabeled_parties(seg, profile, policy)
        if pairs:
            sender = pairs[0]
        if len(pairs) > 1:
            recipient = (Payee(name=pairs[1].name, account_number=pairs[1].account_number), pairs[1].bank)
    if sender is None:
        missing.append(FROM)
        sender = PartyInfo()
    if recipient is None:
        missing.append(TO)
        recipient = (Payee(), "")

    amount = None
    amount_block = seg.first(AMOUNT)
    if amount_block is not None:
        amount = parse_money(amount_block.text)
    if amount is None:
        missing.append(AMOUNT)

    fee = None
    fee_block = seg.first(FEE)
    if fee_block is not None:
        fee = parse_money(fee_block.text)
    if fee is None:
        missing.append(FEE)

    references = extract_references(seg, profile)
    if not references:
        missing.append(REFERENCE)

    status = extract_status(seg)
    if not status:
        missing.append(STATUS)

    payee, recipient_bank = recipient
    return ExtractedFields(
        status=status,
        sender=Party(name=sender.name, account_number=sender.account_number),
        sender_bank=sender.bank,
        recipient=payee,
        recipient_bank=recipient_bank,
        amount=abs(amount) if amount is not None else Decimal("0"),
        fee=abs(fee) if fee is not None else Decimal("0"),
        currency=extract_currency(seg),
        references=references,
        qr_code=extract_qr_code(seg),
        missing=tuple(missing),
    )


__all__ = [
    "ExtractedFields",
    "PartyInfo",
    "extract_currency",
    "extract_fields",
    "extract_qr_code",
    "extract_recipient",
    "extract_references",
    "extract_sender",
    "extract_status",
    "extract_unlabeled_parties",
    "find_masked_account",
    "merge_thai_fragments",
    "parse_money",
    "parse_party",
    "reference_value",
]
