# api/slipparser/parsers/labels.py
"""
Bilingual (Thai/English) label dictionary.

Maps the label variants printed on slips to canonical field identifiers and
compiles them into a single longest-first pattern used by the segmenter.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

STATUS = "status"
FROM = "from"
TO = "to"
AMOUNT = "amount"
FEE = "fee"
REFERENCE = "reference"
BILLER_ID = "biller_id"
STORE_CODE = "store_code"
TRANSACTION_CODE = "transaction_code"
DATE = "date"
QR_CODE = "qr_code"
INFO = "info"

FIELD_IDS = (
    STATUS,
    FROM,
    TO,
    AMOUNT,
    FEE,
    REFERENCE,
    BILLER_ID,
    STORE_CODE,
    TRANSACTION_CODE,
    DATE,
    QR_CODE,
    INFO,
)

# Merchant/QR sub-labels live inside the recipient block and do not close it.
NESTED_FIELDS = frozenset({BILLER_ID, STORE_CODE, TRANSACTION_CODE})
BILLER_FIELDS = (BILLER_ID, STORE_CODE, TRANSACTION_CODE)

# Fields whose label may carry a one-digit ordinal ("หมายเลขอ้างอิง 1").
ORDINAL_FIELDS = frozenset({REFERENCE})

_LATIN = re.compile(r"[A-Za-z0-9]")


def label_key(text: str) -> str:
    """Case- and whitespace-insensitive key for a label variant."""
    return re.sub(r"\s+", " ", (text or "").strip()).lower()


def _synonym_pattern(synonym: str) -> str:
    parts = [re.escape(p) for p in synonym.split()]
    body = r"\s*".join(parts)
    if _LATIN.match(synonym):
        body = r"(?<![A-Za-z0-9])" + body
    if _LATIN.search(synonym[-1:]):
        body = body + r"(?![A-Za-z0-9])"
    return body


@dataclass(frozen=True)
class LabelMatch:
    field: str
    synonym: str
    label: str
    start: int
    end: int


@dataclass(frozen=True)
class LabelDictionary:
    synonyms: Tuple[Tuple[str, Tuple[str, ...]], ...]

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> "LabelDictionary":
        items: List[Tuple[str, Tuple[str, ...]]] = []
        for field in FIELD_IDS:
            seen: List[str] = []
            for raw in mapping.get(field) or ():
                value = str(raw).strip()
                if value and label_key(value) not in {label_key(s) for s in seen}:
                    seen.append(value)
            if seen:
                items.append((field, tuple(seen)))
        unknown = set(mapping) - set(FIELD_IDS)
        if unknown:
            raise ValueError(f"Unknown label fields: {sorted(unknown)}")
        return cls(synonyms=tuple(items))

    def for_field(self, field: str) -> Tuple[str, ...]:
        for name, values in self.synonyms:
            if name == field:
                return values
        return ()

    def fields(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.synonyms)

    def entries(self) -> List[Tuple[str, str]]:
        """(synonym, field) pairs, longest synonym first."""
        pairs = [(syn, field) for field, values in self.synonyms for syn in values]
        pairs.sort(key=lambda p: (-len(label_key(p[0])), p[0]))
        return pairs

    def compile(self) -> "CompiledLabels":
        entries = self.entries()
        alternatives = [f"(?P<l{i}>{_synonym_pattern(syn)})" for i, (syn, _) in enumerate(entries)]
        pattern = re.compile("|".join(alternatives) or r"(?!x)x", re.IGNORECASE)
        return CompiledLabels(pattern=pattern, entries=tuple(entries))


@dataclass(frozen=True)
class CompiledLabels:
    pattern: "re.Pattern[str]"
    entries: Tuple[Tuple[str, str], ...]

    def finditer(self, text: str) -> Iterable[LabelMatch]:
        for match in self.pattern.finditer(text):
            index = int(match.lastgroup[1:]) if match.lastgroup else -1
            if index < 0:
                continue
            synonym, field = self.entries[index]
            yield LabelMatch(field=field, synonym=synonym, label=match.group(0), start=match.start(), end=match.end())

    def field_of(self, label: str) -> Optional[str]:
        key = label_key(label)
        for syn, field in self.entries:
            if label_key(syn) == key:
                return field
        return None


def merge_label_maps(*maps: Optional[Mapping[str, Iterable[str]]]) -> Dict[str, List[str]]:
    merged: Dict[str, List[str]] = {}
    for mapping in maps:
        for field, values in (mapping or {}).items():
            merged.setdefault(field, []).extend(str(v) for v in (values or []))
    return merged


__all__ = [
    "FIELD_IDS",
    "NESTED_FIELDS",
    "BILLER_FIELDS",
    "ORDINAL_FIELDS",
    "LabelDictionary",
    "CompiledLabels",
    "LabelMatch",
    "label_key",
    "merge_label_maps",
]
