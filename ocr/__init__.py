"""Optional receipt OCR.

Usage:
    from ocr import create_scanner

    scanner = create_scanner(config)   # None unless OCR_ENABLED is set
    if scanner:
        scan = scanner.scan(content, "image/jpeg")
"""

from typing import Optional

from keihi import Config
from .base import OCRBackend, OCRError, ReceiptScan, parse_receipt_text
from .mistral import ReceiptScanner


def create_scanner(config: Config) -> Optional[OCRBackend]:
    """Return the configured scanner, or None if OCR is disabled.

    Raises:
        OCRError: If OCR is enabled but no API key is configured
    """
    if not config.ocr_enabled:
        return None
    return ReceiptScanner(api_key=config.mistral_api_key)


__all__ = [
    'OCRBackend',
    'OCRError',
    'ReceiptScan',
    'ReceiptScanner',
    'parse_receipt_text',
    'create_scanner',
]
