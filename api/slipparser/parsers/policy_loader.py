from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .labels import CompiledLabels, LabelDictionary, merge_label_maps

logger = logging.getLogger(__name__)

MONTH_VOCABULARIES = ("thai", "english", "numeric")
ERA_CHOICES = ("be", "ad", "ambiguous")
GENERIC_PROFILE = "generic"


@dataclass(frozen=True)
class DateRules:
    months: Tuple[str, ...] = MONTH_VOCABULARIES
    two_digit_year: Tuple[Tuple[str, str], ...] = (("thai", "be"), ("english", "ad"), ("numeric", "be"))

    def era_for(self, vocabulary: str) -> str:
        for name, era in self.two_digit_year:
            if name == vocabulary:
                return era
        return "ambiguous"


@dataclass(frozen=True)
class BankProfile:
    name: str
    priority: int
    bank_code: str
    detect: Tuple[str, ...]
    labels: LabelDictionary
    compiled_labels: CompiledLabels = field(repr=False, compare=False)
    reference_precedence: Tuple[str, ...] = ()
    date_rules: DateRules = DateRules()
    unlabeled_parties: bool = False

    @property
    def is_generic(self) -> bool:
        return self.name == GENERIC_PROFILE


@dataclass(frozen=True)
class SlipPolicy:
    profiles: Tuple[BankProfile, ...]
    bank_codes: Tuple[Tuple[str, Tuple[str, ...]], ...]

    def profile(self, name: str) -> Optional[BankProfile]:
        key = (name or "").strip().lower()
        for prof in self.profiles:
            if prof.name == key:
                return prof
        return None

    @property
    def generic(self) -> BankProfile:
        prof = self.profile(GENERIC_PROFILE)
        if prof is None:
            raise RuntimeError("policy has no generic profile")
        return prof

    def ordered(self) -> List[BankProfile]:
        return sorted(self.profiles, key=lambda p: (p.priority, p.name))


_POLICY_CACHE: Dict[str, SlipPolicy] = {}


def _default_policy_path() -> Path:
    """
    policy.yaml ships next to this module; SLIP_POLICY_PATH overrides it.
    """
    override = os.getenv("SLIP_POLICY_PATH", "").strip()
    if override:
        return Path(override)
    return Path(__file__).resolve().parent / "policy.yaml"


def _date_rules(*sections: Optional[Mapping[str, Any]]) -> DateRules:
    months: Tuple[str, ...] = MONTH_VOCABULARIES
    eras: Dict[str, str] = {"thai": "be", "english": "ad", "numeric": "be"}
    for section in sections:
        if not section:
            continue
        if section.get("months"):
            months = tuple(m for m in section["months"] if m in MONTH_VOCABULARIES)
        for vocab, era in (section.get("two_digit_year") or {}).items():
            era = str(era).lower()
            if vocab in MONTH_VOCABULARIES and era in ERA_CHOICES:
                eras[vocab] = era
            else:
                logger.warning("Ignoring two_digit_year rule %s=%s", vocab, era)
    return DateRules(months=months, two_digit_year=tuple(sorted(eras.items())))


def _valid_patterns(name: str, patterns: List[str]) -> Tuple[str, ...]:
    kept: List[str] = []
    for pattern in patterns:
        try:
            re.compile(pattern)
        except re.error as exc:
            logger.warning("Dropping bad detect pattern for %s: %r (%s)", name, pattern, exc)
            continue
        kept.append(pattern)
    return tuple(kept)


def build_policy(data: Mapping[str, Any]) -> SlipPolicy:
    defaults = data.get("defaults") or {}
    default_labels = defaults.get("labels") or {}

    profiles: List[BankProfile] = []
    for name, cfg in (data.get("profiles") or {}).items():
        cfg = cfg or {}
        labels = LabelDictionary.from_mapping(merge_label_maps(default_labels, cfg.get("labels")))
        profiles.append(
            BankProfile(
                name=str(name).lower(),
                priority=int(cfg.get("priority", 100)),
                bank_code=str(cfg.get("bank_code") or ""),
                detect=_valid_patterns(name, list(cfg.get("detect") or [])),
                labels=labels,
                compiled_labels=labels.compile(),
                reference_precedence=tuple(str(v) for v in cfg.get("reference_precedence") or ()),
                date_rules=_date_rules(defaults.get("date"), cfg.get("date")),
                unlabeled_parties=bool(cfg.get("unlabeled_parties", False)),
            )
        )

    if not any(p.name == GENERIC_PROFILE for p in profiles):
        labels = LabelDictionary.from_mapping(merge_label_maps(default_labels))
        profiles.append(
            BankProfile(
                name=GENERIC_PROFILE,
                priority=1000,
                bank_code="",
                detect=(),
                labels=labels,
                compiled_labels=labels.compile(),
                date_rules=_date_rules(defaults.get("date")),
                unlabeled_parties=True,
            )
        )

    bank_codes = tuple(
        (str(code), tuple(str(a) for a in aliases or ()))
        for code, aliases in (data.get("bank_codes") or {}).items()
    )
    return SlipPolicy(profiles=tuple(profiles), bank_codes=bank_codes)


def load_policy(path: str | Path | None = None) -> SlipPolicy:
    """
    Load, build and cache the YAML profile definition.
    """
    target = Path(path) if path else _default_policy_path()
    cache_key = str(target)
    if cache_key in _POLICY_CACHE:
        return _POLICY_CACHE[cache_key]

    if not target.exists():
        logger.warning("Slip policy %s not found; using built-in generic profile only", target)
        data: Dict[str, Any] = {}
    else:
        with target.open("r", encoding="utf-8") as fp:
            data = yaml.safe_load(fp) or {}

    policy = build_policy(data)
    _POLICY_CACHE[cache_key] = policy
    logger.info("Loaded slip policy %s with profiles %s", target, [p.name for p in policy.ordered()])
    return policy


def pick_bank_profile(text: str, policy: SlipPolicy) -> BankProfile:
    """First profile (by priority) with any detect hit; generic otherwise."""
    for prof in policy.ordered():
        if prof.is_generic:
            continue
        for pattern in prof.detect:
            if re.search(pattern, text or "", re.IGNORECASE):
                return prof
    return policy.generic


__all__ = [
    "BankProfile",
    "DateRules",
    "SlipPolicy",
    "build_policy",
    "load_policy",
    "pick_bank_profile",
    "GENERIC_PROFILE",
]
