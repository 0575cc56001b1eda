"""Mistral OCR backend.

Documents are sent inline as base64 data URLs to the OCR endpoint; the
markdown of every page is joined into one text.
"""

import base64
import logging
from typing import Optional

from mistralai import Mistral

from keihi.errors import OCRError
from .base import OCRBackend


logger = logging.getLogger(__name__)

OCR_MODEL = "mistral-ocr-latest"


class ReceiptScanner(OCRBackend):
    """Receipt OCR using Mistral's document OCR model."""

    def __init__(self, api_key: Optional[str] = None, client=None) -> None:
        """Initialize the Mistral client.

        Args:
            api_key: Mistral API key
            client: Pre-built client (used instead of api_key when given)

        Raises:
            OCRError: If neither an API key nor a client is provided
        """
        if client is None:
            if not api_key:
                raise OCRError("MISTRAL_API_KEY is required when OCR is enabled",
                               operation='extractText')
            client = Mistral(api_key=api_key)
        self.client = client

    @property
    def name(self) -> str:
        return "mistral"

    def extract_text(self, content: bytes, mime_type: str) -> str:
        encoded = base64.b64encode(content).decode('ascii')
        data_url = f"data:{mime_type};base64,{encoded}"
        if mime_type == 'application/pdf':
            document = {"type": "document_url", "document_url": data_url}
        elif mime_type.startswith('image/'):
            document = {"type": "image_url", "image_url": data_url}
        else:
            raise OCRError(f"未対応のファイル形式です: {mime_type}", operation='extractText')

        try:
            response = self.client.ocr.process(model=OCR_MODEL, document=document)
        except Exception as e:
            logger.error("Mistral OCR failed: %s", e)
            raise OCRError("領収書の読み取りに失敗しました", operation='extractText')

        text = "\n".join(page.markdown for page in response.pages)
        logger.debug("OCR returned %d characters from %d pages",
                     len(text), len(response.pages))
        return text
