# api/slipparser/parsers/common.py
import html
import io
import logging
import re

import pytesseract
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


class OcrError(RuntimeError):
    """The OCR engine could not turn the upload into text."""


def ocr_page(img, lang: str = "tha+eng") -> str:
    """
    Perform OCR on a slip image.

    Args:
        img: PIL Image object
        lang: Language code(s) for OCR. Slips are mixed Thai/English, so the
              default is "tha+eng"; "eng" is used when the Thai pack is missing.

    Returns:
        Extracted text string
    """
    try:
        return pytesseract.image_to_string(img, lang=lang, config="--psm 6") or ""
    except pytesseract.TesseractNotFoundError as exc:
        raise OcrError("tesseract binary is not installed") from exc
    except pytesseract.TesseractError as exc:
        if lang == "eng":
            raise OcrError(f"tesseract failed: {exc}") from exc
        logger.warning("OCR with lang=%s failed (%s); retrying with eng", lang, exc)
        try:
            return pytesseract.image_to_string(img, lang="eng", config="--psm 6") or ""
        except pytesseract.TesseractError as retry_exc:
            raise OcrError(f"tesseract failed: {retry_exc}") from retry_exc


def ocr_image_bytes(data: bytes, lang: str = "tha+eng") -> str:
    """Decode an uploaded image and OCR it. Raises OcrError on bad input."""
    if not data:
        raise OcrError("empty upload")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise OcrError(f"not a readable image: {exc}") from exc
    return ocr_page(img, lang=lang)


_FIGURE = re.compile(r"<figure\b[^>]*>(.*?)</figure\s*>", re.IGNORECASE | re.DOTALL)
_ROW_TAG = re.compile(
    r"</?(?:tr|p|div|br|li|ul|ol|table|thead|tbody|tfoot|h[1-6]|section|header|footer|hr)\b[^>]*>",
    re.IGNORECASE,
)
_CELL_TAG = re.compile(r"</?(?:td|th|span|b|i|u|em|strong|label|small|font)\b[^>]*>", re.IGNORECASE)
_ANY_TAG = re.compile(r"</?[A-Za-z][^<>]*>")


def _figure_to_parenthetical(match: re.Match) -> str:
    inner = _ANY_TAG.sub(" ", match.group(1))
    inner = re.sub(r"\s+", " ", html.unescape(inner)).strip().strip("()").strip()
    return f"\n({inner})\n" if inner else "\n"


def strip_markup(s: str) -> str:
    """Turn decorative OCR markup into plain lines; logos become "(...)" lines."""
    s = _FIGURE.sub(_figure_to_parenthetical, s)
    s = _ROW_TAG.sub("\n", s)
    s = _CELL_TAG.sub(" ", s)
    s = _ANY_TAG.sub("", s)
    return html.unescape(s)


def normalize_text(s: str | None) -> str:
    if not s:
        return ""
    s = strip_markup(s.replace("\r\n", "\n").replace("\r", "\n"))
    s = s.replace("\xa0", " ").replace("\u200b", "").replace("\ufeff", "")
    s = s.replace("\u2013", "-").replace("\u2014", "-")
    # nikhahit + sara aa, as OCR often splits sara am
    s = s.replace("\u0e4d\u0e32", "\u0e33")
    s = re.sub(r"[ \t]+", " ", s)
    lines = [line.strip() for line in s.split("\n")]
    return "\n".join(line for line in lines if line)


_THAI_DIGITS = str.maketrans("๐๑๒๓๔๕๖๗๘๙", "0123456789")


def thai_digits_to_ascii(s: str) -> str:
    return s.translate(_THAI_DIGITS)
