# api/slipparser/parsers/segmenter.py
"""
Split cleaned slip text into labelled blocks.

Every accepted label match opens a block whose content runs until the next
label that can close it. Merchant sub-labels (biller id, store code,
transaction code) open their own blocks but leave the enclosing recipient
block open, so the recipient block still spans its merchant lines.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from .labels import NESTED_FIELDS, ORDINAL_FIELDS, LabelMatch
from .policy_loader import BankProfile

logger = logging.getLogger(__name__)

_PAREN = re.compile(r"\([^()\n]*\)")
_SEPARATOR = re.compile(r"[ \t]*[:：]?[ \t]*")
_ORDINAL = re.compile(r"[ \t]+(\d)(?=[ \t]*(?:[:：]|\n|$))")
_LATIN = re.compile(r"[A-Za-z]")


@dataclass(frozen=True)
class Block:
    field: str
    synonym: str
    label: str
    ordinal: Optional[int]
    start: int
    content_start: int
    end: int
    text: str

    @property
    def lines(self) -> List[str]:
        return [line.strip() for line in self.text.split("\n") if line.strip()]


@dataclass(frozen=True)
class Segmentation:
    text: str
    blocks: Tuple[Block, ...]

    @property
    def fields(self) -> Tuple[str, ...]:
        seen: List[str] = []
        for block in self.blocks:
            if block.field not in seen:
                seen.append(block.field)
        return tuple(seen)

    def has(self, field: str) -> bool:
        return any(b.field == field for b in self.blocks)

    def first(self, field: str) -> Optional[Block]:
        for block in self.blocks:
            if block.field == field:
                return block
        return None

    def all(self, field: str) -> Tuple[Block, ...]:
        return tuple(b for b in self.blocks if b.field == field)

    def within(self, block: Block, field: Optional[str] = None) -> Tuple[Block, ...]:
        """Blocks that start inside `block`, optionally limited to one field."""
        return tuple(
            b
            for b in self.blocks
            if block.content_start <= b.start < block.end and b is not block and (field is None or b.field == field)
        )

    def own_text(self, block: Block) -> str:
        """Block content up to its first nested block."""
        children = self.within(block)
        stop = children[0].start if children else block.end
        return self.text[block.content_start : stop].strip()

    def text_before(self, fields: Iterable[str]) -> str:
        wanted = set(fields)
        for block in self.blocks:
            if block.field in wanted:
                return self.text[: block.start]
        return self.text


def _in_parenthetical(spans: List[Tuple[int, int]], pos: int) -> bool:
    return any(start < pos < end for start, end in spans)


def _accept(text: str, match: LabelMatch, spans: List[Tuple[int, int]]) -> bool:
    if _in_parenthetical(spans, match.start):
        return False
    line_start = text.rfind("\n", 0, match.start) + 1
    if not text[line_start : match.start].strip():
        return True
    if not text[match.start - 1].isspace():
        return False
    # mid-line Latin labels must be written the way the dictionary spells them
    if _LATIN.match(match.synonym):
        return re.sub(r"\s+", " ", match.label) == match.synonym
    return True


def _content_start(text: str, match: LabelMatch) -> Tuple[int, Optional[int]]:
    pos = match.end
    ordinal: Optional[int] = None
    if match.field in ORDINAL_FIELDS:
        m = _ORDINAL.match(text, pos)
        if m:
            ordinal = int(m.group(1))
            pos = m.end()
    return _SEPARATOR.match(text, pos).end(), ordinal


def segment(text: str, profile: BankProfile) -> Segmentation:
    """
    Locate labelled blocks in cleaned text using the profile's dictionary.

    Absence of blocks is a valid result (an empty segmentation).
    """
    spans = [m.span() for m in _PAREN.finditer(text)]
    matches = [m for m in profile.compiled_labels.finditer(text) if _accept(text, m, spans)]

    blocks: List[Block] = []
    for i, match in enumerate(matches):
        later = matches[i + 1 :]
        if match.field in NESTED_FIELDS:
            closer = later[0] if later else None
        else:
            closer = next((m for m in later if m.field not in NESTED_FIELDS), None)
        end = closer.start if closer else len(text)
        content_start, ordinal = _content_start(text, match)
        content_start = min(content_start, end)
        blocks.append(
            Block(
                field=match.field,
                synonym=match.synonym,
                label=match.label,
                ordinal=ordinal,
                start=match.start,
                content_start=content_start,
                end=end,
                text=text[content_start:end].strip(),
            )
        )

    logger.debug("Segmented slip with profile %s into %s", profile.name, [b.field for b in blocks])
    return Segmentation(text=text, blocks=tuple(blocks))


__all__ = ["Block", "Segmentation", "segment"]
