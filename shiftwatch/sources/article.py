"""Article page scraping: caption-marked code table first, whole-page scan second."""

from __future__ import annotations

import re
from typing import Iterator

from bs4 import BeautifulSoup
from bs4.element import Tag

from shiftwatch.common.code_format import (
    STATUS_ACTIVE,
    STATUS_EXPIRED,
    STATUS_HOLD,
    UNKNOWN_REWARD,
    find_codes,
    iter_code_matches,
)
from shiftwatch.common.models import CollectedDraft

CONTEXT_WINDOW = 200
HEADER_ROW_CLASS = "table__head__row"

_WHITESPACE_RE = re.compile(r"\s+")

_QUANTIFIED_REWARD_RES = (
    re.compile(r"(\d+)\s*x?\s+(Golden|Diamond|Skeleton)\s+Keys?", re.IGNORECASE),
)
_PLAIN_REWARD_RES = (
    (re.compile(r"Vault\s+Card", re.IGNORECASE), "Vault Card"),
    (re.compile(r"Cosmetic", re.IGNORECASE), "Cosmetic"),
)
_STATUS_RES = (
    (re.compile(r"\bexpired\b", re.IGNORECASE), STATUS_EXPIRED),
    (re.compile(r"\bon[\s-]+hold\b|\bhold\b", re.IGNORECASE), STATUS_HOLD),
)
_DATE_RES = (
    re.compile(r"(?:valid until|expires on|expires?|until)\s*:?\s*([A-Za-z]+\.? \d{1,2}(?:st|nd|rd|th)?,? \d{4})", re.IGNORECASE),
    re.compile(r"([A-Za-z]{3,9}\.? \d{1,2}(?:st|nd|rd|th)?,? \d{4})"),
    re.compile(r"(\d{1,2} [A-Za-z]{3,9},? \d{4})"),
    re.compile(r"(\d{4}-\d{2}-\d{2})"),
    re.compile(r"(\d{1,2}/\d{1,2}/\d{4})"),
)


def _clean_text(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value).strip()


def infer_reward(text: str) -> str:
    for pattern in _QUANTIFIED_REWARD_RES:
        match = pattern.search(text)
        if match:
            quantity = int(match.group(1))
            kind = match.group(2).capitalize()
            noun = "Key" if quantity == 1 else "Keys"
            return f"{quantity} {kind} {noun}"
    for pattern, label in _PLAIN_REWARD_RES:
        if pattern.search(text):
            return label
    return UNKNOWN_REWARD


def infer_status(text: str) -> str:
    for pattern, status in _STATUS_RES:
        if pattern.search(text):
            return status
    return STATUS_ACTIVE


def infer_expiry(text: str) -> str | None:
    for pattern in _DATE_RES:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def _build_notes(*parts: str) -> str | None:
    combined = " ".join(part.strip() for part in parts if part and part.strip())
    return combined or None


def find_marked_table(soup: BeautifulSoup, caption_marker: str) -> Tag | None:
    marker = _clean_text(caption_marker).lower()
    for caption in soup.find_all("caption"):
        if marker in _clean_text(caption.get_text(" ")).lower():
            table = caption.find_parent("table")
            if table is not None:
                return table
    return None


def _is_header_row(row: Tag) -> bool:
    classes = row.get("class") or []
    if HEADER_ROW_CLASS in classes:
        return True
    return not row.find_all("td")


def _table_drafts(table: Tag, page_url: str | None) -> Iterator[CollectedDraft]:
    for row in table.find_all("tr"):
        if _is_header_row(row):
            continue
        cells = [_clean_text(cell.get_text(" ")) for cell in row.find_all("td")]
        if len(cells) < 3:
            continue
        expiry_text, reward_text, code_cell = cells[0], cells[1], cells[2]
        for code in find_codes(code_cell.upper()):
            yield CollectedDraft(
                code=code,
                reward=reward_text or None,
                status=STATUS_ACTIVE,
                expires=expiry_text or None,
                url=page_url,
                notes=_build_notes(expiry_text, reward_text),
                is_fallback=False,
            )


def _document_text(soup: BeautifulSoup) -> str:
    for element in soup(["script", "style", "noscript"]):
        element.decompose()
    return _clean_text(soup.get_text(" "))


def _scan_drafts(text: str, page_url: str | None) -> Iterator[CollectedDraft]:
    for match in iter_code_matches(text):
        start = max(0, match.start() - CONTEXT_WINDOW)
        end = min(len(text), match.end() + CONTEXT_WINDOW)
        snippet = text[start:end].strip()
        yield CollectedDraft(
            code=match.group(0).upper(),
            reward=infer_reward(snippet),
            status=infer_status(snippet),
            expires=infer_expiry(snippet),
            url=page_url,
            notes=snippet or None,
            is_fallback=False,
        )


def extract_article_drafts(
    html: str | bytes,
    *,
    caption_marker: str,
    page_url: str | None = None,
) -> Iterator[CollectedDraft]:
    """Yield drafts from an article page.

    Rows of the table captioned with ``caption_marker`` are read as
    (expiry, reward, code) cells. When that table is missing or yields no
    codes, the whole page text is scanned and each hit carries a window of
    surrounding text from which reward, status and expiry are inferred.
    """
    soup = BeautifulSoup(html, "html.parser")
    table = find_marked_table(soup, caption_marker)
    if table is not None:
        drafts = list(_table_drafts(table, page_url))
        if drafts:
            return iter(drafts)
    return _scan_drafts(_document_text(soup), page_url)
