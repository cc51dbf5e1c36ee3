# api/slipparser/parsers/slip_normalizer.py
"""
Slip normalizer: raw OCR text (+ optional bank hint) -> SlipRecord.

    unresolved  raw text only
    segmented   profile chosen, blocks located
    normalized  fields extracted, date and banks canonicalized (terminal)

Every step is total; missing data becomes defaults plus warnings. The only
error surfaced to callers is InvalidSlipInput.
"""
from __future__ import annotations

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .banks import profile_for_hint
from .common import normalize_text
from .dates import LOW, DateResult, find_date_text, normalize_date
from .labels import DATE
from .policy_loader import BankProfile, SlipPolicy, load_policy
from .record import SlipRecord
from .segmenter import Segmentation, segment
from .slip_fields import extract_fields

logger = logging.getLogger(__name__)

WARN_FIELD_NOT_FOUND = "field_not_found"
WARN_DATE_AMBIGUOUS = "date_ambiguous"
WARN_BANK_UNRESOLVED = "bank_unresolved"


class InvalidSlipInput(ValueError):
    """Raw text is missing, not a string, or has no content after cleanup."""


class SlipState(str, Enum):
    UNRESOLVED = "unresolved"
    SEGMENTED = "segmented"
    NORMALIZED = "normalized"


@dataclass(frozen=True)
class NormalizeMeta:
    profile: str
    state: SlipState
    date_confidence: str
    warnings: Tuple[str, ...] = ()
    processing_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "profile": self.profile,
            "state": self.state.value,
            "date_confidence": self.date_confidence,
            "warnings": list(self.warnings),
            "processing_ms": self.processing_ms,
        }


@dataclass(frozen=True)
class NormalizeResult:
    record: SlipRecord
    meta: NormalizeMeta


@dataclass(frozen=True)
class BatchItem:
    id: str
    text: Any
    file_name: str = ""
    bank_hint: Optional[str] = None


@dataclass(frozen=True)
class BatchOutcome:
    id: str
    file_name: str = ""
    result: Optional[NormalizeResult] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass
class _Working:
    state: SlipState
    text: str
    profile: Optional[BankProfile] = None
    segmentation: Optional[Segmentation] = None
    warnings: List[str] = field(default_factory=list)

    def advance(self, state: SlipState) -> None:
        logger.debug("slip %s -> %s", self.state.value, state.value)
        self.state = state


def _validate(raw_text: Any) -> str:
    if not isinstance(raw_text, str):
        raise InvalidSlipInput(f"raw text must be a string, got {type(raw_text).__name__}")
    if not raw_text.strip():
        raise InvalidSlipInput("raw text is empty")
    text = normalize_text(raw_text)
    if not text:
        raise InvalidSlipInput("raw text has no content after markup cleanup")
    return text


def _default_workers() -> int:
    configured = os.getenv("BATCH_WORKERS", "").strip()
    if configured.isdigit() and int(configured) > 0:
        return int(configured)
    return min(8, os.cpu_count() or 1)


class SlipNormalizer:
    """Composes resolver, segmenter, extractor and date normalizer per profile."""

    def __init__(self, policy: Optional[SlipPolicy] = None, reference_year: Optional[int] = None):
        self.policy = policy or load_policy()
        self.reference_year = reference_year

    def normalize(self, raw_text: Any, bank_hint: Optional[str] = None) -> SlipRecord:
        return self.normalize_with_meta(raw_text, bank_hint).record

    def normalize_with_meta(self, raw_text: Any, bank_hint: Optional[str] = None) -> NormalizeResult:
        started = time.perf_counter()
        work = _Working(state=SlipState.UNRESOLVED, text=_validate(raw_text))

        profile, hint_used = profile_for_hint(bank_hint, work.text, self.policy)
        if profile.is_generic:
            work.warnings.append(WARN_BANK_UNRESOLVED)
        work.profile = profile
        work.segmentation = segment(work.text, profile)
        work.advance(SlipState.SEGMENTED)

        record, date_result = self._build_record(work)
        work.advance(SlipState.NORMALIZED)

        meta = NormalizeMeta(
            profile=profile.name,
            state=work.state,
            date_confidence=date_result.confidence,
            warnings=tuple(work.warnings),
            processing_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        logger.info(
            "Normalized slip profile=%s hint_used=%s warnings=%s",
            profile.name,
            hint_used,
            len(meta.warnings),
        )
        return NormalizeResult(record=record, meta=meta)

    def _build_record(self, work: _Working) -> Tuple[SlipRecord, DateResult]:
        profile, seg = work.profile, work.segmentation
        fields = extract_fields(seg, profile, self.policy)
        work.warnings.extend(f"{WARN_FIELD_NOT_FOUND}:{name}" for name in fields.missing)

        date_block = seg.first(DATE)
        date_text = find_date_text(date_block.text, profile) if date_block else ""
        if not date_text:
            date_text = find_date_text(seg.text, profile)
        if date_text:
            date_result = normalize_date(date_text, profile, self.reference_year)
            if date_result.confidence == LOW:
                work.warnings.append(WARN_DATE_AMBIGUOUS)
        else:
            date_result = DateResult()
            work.warnings.append(f"{WARN_FIELD_NOT_FOUND}:{DATE}")

        bank_from = fields.sender_bank if profile.is_generic else profile.bank_code
        refs = list(fields.references) + ["", "", ""]
        record = SlipRecord(
            bank_from=bank_from,
            bank_to=fields.recipient_bank,
            status=fields.status,
            date_time_text=date_text,
            date_time_iso=date_result.iso,
            sender=fields.sender,
            recipient=fields.recipient,
            amount=fields.amount,
            fee=fields.fee,
            currency=fields.currency,
            transaction_reference=refs[0],
            reference_number=refs[1],
            reference_code=refs[2],
            qr_code=fields.qr_code,
        )
        return record, date_result

    def normalize_batch(
        self,
        items: Iterable[BatchItem],
        max_workers: Optional[int] = None,
        bank_hint: Optional[str] = None,
    ) -> List[BatchOutcome]:
        """
        Normalize many slips concurrently. Output order follows input order;
        an invalid slip yields an outcome with `error` set instead of
        aborting the batch.
        """
        items = list(items)
        if not items:
            return []

        def _one(item: BatchItem) -> BatchOutcome:
            try:
                result = self.normalize_with_meta(item.text, item.bank_hint or bank_hint)
            except InvalidSlipInput as exc:
                logger.warning("Rejected slip %s: %s", item.id, exc)
                return BatchOutcome(id=item.id, file_name=item.file_name, error=str(exc))
            return BatchOutcome(id=item.id, file_name=item.file_name, result=result)

        workers = max(1, min(max_workers or _default_workers(), len(items)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(_one, items))
        logger.info(
            "Batch normalized %s slips (%s rejected) with %s workers",
            len(outcomes),
            sum(1 for o in outcomes if not o.ok),
            workers,
        )
        return outcomes


_DEFAULT: Optional[SlipNormalizer] = None


def get_normalizer() -> SlipNormalizer:
    global _DEFAULT
    if _DEFAULT is None:
        _DEFAULT = SlipNormalizer()
    return _DEFAULT


def normalize_slip(raw_text: Any, bank_hint: Optional[str] = None) -> SlipRecord:
    return get_normalizer().normalize(raw_text, bank_hint)


__all__ = [
    "BatchItem",
    "BatchOutcome",
    "InvalidSlipInput",
    "NormalizeMeta",
    "NormalizeResult",
    "SlipNormalizer",
    "SlipState",
    "get_normalizer",
    "normalize_slip",
]
