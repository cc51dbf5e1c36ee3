# api/slipparser/parsers/banks.py
"""
Bank resolution: which profile parses a slip, and which short code a bank
name/logo token inside a block stands for.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from .labels import label_key
from .policy_loader import BankProfile, SlipPolicy, load_policy, pick_bank_profile

logger = logging.getLogger(__name__)

_LATIN = re.compile(r"[A-Za-z0-9]")


@dataclass(frozen=True)
class BankMatch:
    code: str
    alias: str
    start: int
    end: int


def _alias_pattern(alias: str) -> str:
    body = r"\s*".join(re.escape(part) for part in alias.split())
    if _LATIN.match(alias):
        body = r"(?<![A-Za-z0-9])" + body
    if _LATIN.search(alias[-1:]):
        return body + r"(?![A-Za-z0-9])"
    if not _LATIN.search(alias):
        # Thai aliases must end a word: space, slash, bracket or end of text.
        return body + r"(?=[\s/()\[\],.:]|$)"
    return body


@lru_cache(maxsize=16)
def _compile_aliases(bank_codes: Tuple[Tuple[str, Tuple[str, ...]], ...]):
    entries: List[Tuple[str, str]] = [(alias, code) for code, aliases in bank_codes for alias in aliases]
    entries.sort(key=lambda e: (-len(label_key(e[0])), e[0]))
    if not entries:
        return re.compile(r"(?!x)x"), ()
    alternatives = [f"(?P<b{i}>{_alias_pattern(alias)})" for i, (alias, _) in enumerate(entries)]
    return re.compile("|".join(alternatives), re.IGNORECASE), tuple(entries)


def find_banks(text: str, policy: Optional[SlipPolicy] = None) -> List[BankMatch]:
    policy = policy or load_policy()
    pattern, entries = _compile_aliases(policy.bank_codes)
    hits: List[BankMatch] = []
    for m in pattern.finditer(text or ""):
        alias, code = entries[int(m.lastgroup[1:])]
        hits.append(BankMatch(code=code, alias=alias, start=m.start(), end=m.end()))
    return hits


def find_bank(text: str, policy: Optional[SlipPolicy] = None) -> Optional[BankMatch]:
    hits = find_banks(text, policy)
    return hits[0] if hits else None


def canonical_bank_code(token: str | None, policy: Optional[SlipPolicy] = None) -> str:
    """Map a bank name/logo token to its short code; "" when unknown."""
    hit = find_bank(token or "", policy)
    return hit.code if hit else ""


_BANK_FILLER = re.compile(r"(?i)\b(?:bank|logo|plc|pcl|public company limited)\b|ธนาคาร|ธ\.|บมจ\.|[/|\-\u2013,.:()\s]")


def is_bank_only(line: str, policy: Optional[SlipPolicy] = None) -> bool:
    """True when a line names a bank and nothing else ("Bangkok Bank / ธนาคารกรุงเทพ")."""
    hits = find_banks(line, policy)
    if not hits:
        return False
    rest = line
    for hit in reversed(hits):
        rest = rest[: hit.start] + " " + rest[hit.end :]
    return not _BANK_FILLER.sub("", rest)


def resolve_profile(text: str, policy: Optional[SlipPolicy] = None) -> BankProfile:
    """
    Pick the profile for a slip by scanning for bank-identifying tokens.

    Profiles are tried in ascending priority (SCB, BBL, Krungsri); the first
    one with any detect hit wins, otherwise the generic profile is returned.
    """
    policy = policy or load_policy()
    return pick_bank_profile(text, policy)


def profile_for_hint(
    hint: str | None,
    text: str = "",
    policy: Optional[SlipPolicy] = None,
) -> Tuple[BankProfile, bool]:
    """
    Resolve an explicit bank selection. Returns (profile, hint_used).

    The hint may be a profile name ("scb"), a short code ("BBL") or any alias
    from the bank code table ("ธนาคารกรุงเทพ"). Unknown hints fall back to
    scanning the text.
    """
    policy = policy or load_policy()
    if hint and hint.strip():
        prof = policy.profile(hint)
        if prof is not None:
            return prof, True
        code = canonical_bank_code(hint, policy)
        if code:
            for prof in policy.ordered():
                if prof.bank_code == code:
                    return prof, True
        logger.warning("Unknown bank hint %r; resolving from text", hint)
    return resolve_profile(text, policy), False


__all__ = [
    "BankMatch",
    "canonical_bank_code",
    "find_bank",
    "find_banks",
    "is_bank_only",
    "profile_for_hint",
    "resolve_profile",
]
