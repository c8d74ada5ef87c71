"""
Text Extractor
Turns uploaded PDF/TXT bytes into ordered per-page text using unstructured.io.
"""
from collections import OrderedDict
from io import BytesIO
from math import ceil
from typing import List
import structlog

from unstructured.documents.elements import Element, PageBreak
from unstructured.partition.pdf import partition_pdf

from docqa.errors import ExtractionDegraded
from docqa.models.schemas import PDF_MIME_TYPE, TEXT_MIME_TYPE

logger = structlog.get_logger()


EMPTY_TEXT_PLACEHOLDER = "[Text file is empty]"
TEXT_READ_FAILED_PLACEHOLDER = "[Text file reading failed]"
EMPTY_PDF_PLACEHOLDER = "[PDF appears to be empty or image-based]"
PDF_FAILED_PLACEHOLDER = "[PDF content extraction failed - file may be corrupted or image-based]"
UNSUPPORTED_PLACEHOLDER = "[Unsupported file type]"

PLACEHOLDERS = frozenset({
    EMPTY_TEXT_PLACEHOLDER,
    TEXT_READ_FAILED_PLACEHOLDER,
    EMPTY_PDF_PLACEHOLDER,
    PDF_FAILED_PLACEHOLDER,
    UNSUPPORTED_PLACEHOLDER,
})

SENTENCE_TERMINATORS = (". ", "! ", "? ")
# A page cut only snaps back to a sentence end found past this share of the span.
SENTENCE_SNAP_RATIO = 0.7


def is_degraded(pages: List[str]) -> bool:
    """True when extraction produced a placeholder instead of document text."""
    return len(pages) == 1 and pages[0] in PLACEHOLDERS


def split_into_pages(text: str, page_count: int) -> List[str]:
    """
    Approximate page boundaries for text that has no page metadata.

    The text is cut into ``page_count`` spans of ``ceil(len / page_count)``
    characters. Each cut moves back to just after the last sentence
    terminator in the span when that terminator lies past 70% of it.
    The last page absorbs whatever remains.

    This is a heuristic: citations near a boundary may name the
    neighbouring page.
    """
    if page_count <= 1 or not text:
        return [text.strip()]

    span = ceil(len(text) / page_count)
    pages = []
    start = 0

    for page_idx in range(page_count):
        if start >= len(text):
            break

        if page_idx == page_count - 1:
            end = len(text)
        else:
            end = min(start + span, len(text))
            window = text[start:end]
            cut = max(window.rfind(t) for t in SENTENCE_TERMINATORS)
            if cut > span * SENTENCE_SNAP_RATIO:
                end = start + cut + 1

        pages.append(text[start:end].strip())
        start = end

    return pages


class TextExtractor:
    """Extracts ordered page texts from PDF and plain-text uploads."""

    def extract(self, data: bytes, mime_type: str) -> List[str]:
        """
        Extract per-page text. Never raises.

        Args:
            data: Raw file bytes
            mime_type: Declared MIME type

        Returns:
            Ordered list of trimmed page texts. Failures yield a single
            placeholder page (see ``is_degraded``).
        """
        try:
            if mime_type == TEXT_MIME_TYPE:
                return self._extract_text(data)
            if mime_type == PDF_MIME_TYPE:
                return self._extract_pdf(data)
            raise ExtractionDegraded(f"No extractor for {mime_type}", user_message=UNSUPPORTED_PLACEHOLDER)
        except ExtractionDegraded as e:
            logger.warning("Extraction degraded", reason=e.message, mime_type=mime_type)
            return [e.user_message]

    def _extract_text(self, data: bytes) -> List[str]:
        # NUL bytes mean binary data, or a UTF-16/32 file, declared as text/plain.
        if b"\x00" in data:
            raise ExtractionDegraded("Text file contains binary data", user_message=TEXT_READ_FAILED_PLACEHOLDER)

        content = data.decode("utf-8-sig", errors="replace").strip()
        if not content:
            raise ExtractionDegraded("Text file is empty", user_message=EMPTY_TEXT_PLACEHOLDER)
        return [content]

    def _extract_pdf(self, data: bytes) -> List[str]:
        try:
            elements = partition_pdf(
                file=BytesIO(data),
                strategy="fast",
                include_page_breaks=True,
            )
        except Exception as e:
            raise ExtractionDegraded(f"PDF parsing error: {e}", user_message=PDF_FAILED_PLACEHOLDER) from e

        pages = self.pages_from_elements(elements)
        if not any(pages):
            raise ExtractionDegraded("No text extracted from PDF", user_message=EMPTY_PDF_PLACEHOLDER)

        logger.info("PDF parsed", element_count=len(elements), page_count=len(pages))
        return pages

    def pages_from_elements(self, elements: List[Element]) -> List[str]:
        """
        Group parsed elements into page texts.

        Uses element page numbers when the parser provides them, otherwise
        falls back to ``split_into_pages`` with the page-break count.
        """
        text_elements = [el for el in elements if not isinstance(el, PageBreak)]
        page_numbers = [self._page_number(el) for el in text_elements]

        if text_elements and all(n is not None for n in page_numbers):
            by_page = OrderedDict()
            for page_number in range(1, max(page_numbers) + 1):
                by_page[page_number] = []
            for el, page_number in zip(text_elements, page_numbers):
                text = self._element_text(el)
                if text:
                    by_page[page_number].append(text)
            return ["\n\n".join(parts).strip() for parts in by_page.values()]

        page_count = sum(1 for el in elements if isinstance(el, PageBreak)) + 1
        full_text = "\n\n".join(t for t in (self._element_text(el) for el in text_elements) if t)
        logger.info("No page metadata, approximating page boundaries", page_count=page_count)
        return split_into_pages(full_text.strip(), page_count)

    def _page_number(self, element: Element):
        metadata = getattr(element, "metadata", None)
        return getattr(metadata, "page_number", None) if metadata else None

    def _element_text(self, element: Element) -> str:
        if hasattr(element, "text"):
            return str(element.text).strip()
        return str(element).strip()
