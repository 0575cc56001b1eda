"""PDF assembly for monthly expense reports.

Receipt images become single A4 pages; the exported sheet and receipt PDFs
are then concatenated into one document with page numbers and bookmarks.
"""

import io
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader, PdfWriter
from reportlab.lib.colors import Color
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from keihi.errors import PDFError


logger = logging.getLogger(__name__)

# A4 at 72 dpi
PAGE_WIDTH = 595
PAGE_HEIGHT = 842
MARGIN = 40
MAX_IMAGE_WIDTH = PAGE_WIDTH - 2 * MARGIN
MAX_IMAGE_HEIGHT = PAGE_HEIGHT - 2 * MARGIN

FOOTER_FONT = "Helvetica"
FOOTER_FONT_SIZE = 10
FOOTER_COLOR = Color(0.5, 0.5, 0.5)


@dataclass
class Bookmark:
    """Outline entry pointing at a page of the merged document.

    Attributes:
        title: Text shown in the outline
        page_number: 1-indexed page in the merged document
    """
    title: str
    page_number: int


def fit_image(width: float, height: float) -> Tuple[float, float]:
    """Scale an image size to fit inside the printable area of an A4 page.

    The aspect ratio is kept and images are never enlarged.

    Returns:
        (width, height) in points
    """
    if width <= 0 or height <= 0:
        raise PDFError("画像サイズが不正です。", operation='convertImageToPDF')
    scale = min(MAX_IMAGE_WIDTH / width, MAX_IMAGE_HEIGHT / height, 1.0)
    return width * scale, height * scale


def convert_image_to_pdf(image_bytes: bytes) -> bytes:
    """Render an image centred on a single A4 page.

    Args:
        image_bytes: Image content in any format Pillow can read

    Returns:
        PDF content

    Raises:
        PDFError: If the image can't be decoded
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            image = img.convert('RGB')
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("Image decode failed: %s", e)
        raise PDFError("画像の読み込みに失敗しました。", operation='convertImageToPDF')

    width, height = fit_image(*image.size)
    if (width, height) != image.size:
        image = image.resize((max(1, round(width)), max(1, round(height))),
                             Image.Resampling.LANCZOS)

    x = (PAGE_WIDTH - width) / 2
    y = (PAGE_HEIGHT - height) / 2

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
    c.drawImage(ImageReader(image), x, y, width=width, height=height)
    c.showPage()
    c.save()
    return buf.getvalue()


def count_pages(pdf_bytes: bytes) -> int:
    """Return the number of pages in a PDF, or 0 if it can't be read."""
    try:
        return len(PdfReader(io.BytesIO(pdf_bytes)).pages)
    except Exception as e:
        logger.debug("Unreadable PDF: %s", e)
        return 0


def _footer_page(text: str, width: float, height: float):
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(width, height))
    c.setFont(FOOTER_FONT, FOOTER_FONT_SIZE)
    c.setFillColor(FOOTER_COLOR)
    c.drawString(width - 60, 30, text)
    c.showPage()
    c.save()
    return PdfReader(io.BytesIO(buf.getvalue())).pages[0]


def merge_pdfs(pdf_buffers: Sequence[bytes],
               bookmarks: Optional[List[Bookmark]] = None) -> bytes:
    """Concatenate PDFs into one document with page numbers and bookmarks.

    Inputs that can't be parsed are skipped. Every page of the result gets a
    "page / total" footer in the lower right corner.

    Args:
        pdf_buffers: PDF documents, in output order
        bookmarks: Outline entries; entries pointing past the last page are
            ignored

    Returns:
        Merged PDF content

    Raises:
        PDFError: If no pages are left to merge
    """
    writer = PdfWriter()

    for index, buffer in enumerate(pdf_buffers):
        try:
            reader = PdfReader(io.BytesIO(buffer))
            pages = list(reader.pages)
        except Exception as e:
            logger.warning("Skipping unreadable PDF #%d: %s", index + 1, e)
            continue
        for page in pages:
            writer.add_page(page)

    total = len(writer.pages)
    if total == 0:
        raise PDFError("結合できるPDFページがありません。", operation='mergePDFs')

    for number, page in enumerate(writer.pages, start=1):
        # Stamp in the visible orientation, relative to the box origin
        if page.rotation:
            page.transfer_rotation_to_content()
        box = page.mediabox
        footer = _footer_page(f"{number} / {total}", float(box.width), float(box.height))
        page.merge_translated_page(footer, float(box.left), float(box.bottom))

    for bookmark in bookmarks or []:
        if 1 <= bookmark.page_number <= total:
            writer.add_outline_item(bookmark.title, bookmark.page_number - 1)
        else:
            logger.debug("Ignoring bookmark %r for page %d of %d",
                         bookmark.title, bookmark.page_number, total)

    out = io.BytesIO()
    writer.write(out)
    logger.info("Merged %d pages from %d documents", total, len(pdf_buffers))
    return out.getvalue()
