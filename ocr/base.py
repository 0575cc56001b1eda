"""Receipt scanning: recognised text and heuristics to read it.

This module defines the interface OCR backends implement, plus the parser
that pulls an amount, a date and descriptive lines out of receipt text.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Optional

from keihi.errors import OCRError


# ¥1,234 / ￥1,234 / 1,234円
AMOUNT_PATTERN = re.compile(r'[¥￥][\d,]+|[\d,]+円')

# 2025年2月1日, 2025/2/1
YMD_PATTERN = re.compile(r'(\d{4})[年/](\d{1,2})[月/](\d{1,2})日?')
# 2/1/2025, 2月1日, 2025
MDY_PATTERN = re.compile(r'(\d{1,2})[/月](\d{1,2})[/日]?,?\s*(\d{4})')


@dataclass
class ReceiptScan:
    """Information read from a receipt.

    Attributes:
        text: Full recognised text
        amount: Largest yen amount found, if any
        date: First date found, as YYYY-MM-DD
        details: Remaining descriptive lines, newline separated
    """
    text: str
    amount: Optional[int] = None
    date: Optional[str] = None
    details: str = ""


def _parse_amount(match: str) -> Optional[int]:
    digits = re.sub(r'[¥￥円,]', '', match)
    return int(digits) if digits.isdigit() else None


def _normalise_date(year: str, month: str, day: str) -> Optional[str]:
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def _find_date(line: str) -> Optional[str]:
    match = YMD_PATTERN.search(line)
    if match:
        return _normalise_date(match.group(1), match.group(2), match.group(3))
    match = MDY_PATTERN.search(line)
    if match:
        return _normalise_date(match.group(3), match.group(1), match.group(2))
    return None


def _has_date(line: str) -> bool:
    return bool(YMD_PATTERN.search(line) or MDY_PATTERN.search(line))


def parse_receipt_text(text: str) -> ReceiptScan:
    """Extract amount, date and details from receipt text.

    The total is usually the largest amount on a receipt, so the maximum is
    taken. The first line containing a valid date wins.
    """
    result = ReceiptScan(text=text)

    amounts = [a for a in (_parse_amount(m) for m in AMOUNT_PATTERN.findall(text))
               if a is not None]
    if amounts:
        result.amount = max(amounts)

    lines = [line.strip() for line in text.splitlines()]
    for line in lines:
        found = _find_date(line)
        if found:
            result.date = found
            break

    result.details = "\n".join(
        line for line in lines
        if len(line) > 3 and not AMOUNT_PATTERN.search(line) and not _has_date(line)
    )
    return result


class OCRBackend(ABC):
    """Interface for text recognition providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging."""
        pass

    @abstractmethod
    def extract_text(self, content: bytes, mime_type: str) -> str:
        """Recognise the text in an image or PDF.

        Raises:
            OCRError: If recognition fails
        """
        pass

    def scan(self, content: bytes, mime_type: str) -> ReceiptScan:
        """Recognise a receipt and parse the result."""
        return parse_receipt_text(self.extract_text(content, mime_type))


__all__ = [
    'OCRBackend',
    'OCRError',
    'ReceiptScan',
    'parse_receipt_text',
]
