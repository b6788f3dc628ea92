"""
PDF processor service.

Turns an uploaded PDF into the two inputs the engine consumes: base64 JPEG
page images and positioned text tokens. Pages are rendered concurrently and
reassembled in page order.
"""
import base64
import io
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List

import pdfplumber
import structlog
from pdfminer.pdfdocument import PDFPasswordIncorrect

from finextract.engine.models import TextToken
from finextract.exceptions import PdfPasswordProtectedError, PdfProcessingError

logger = structlog.get_logger(__name__)

PDF_POINTS_PER_INCH = 72


@dataclass
class RenderedPage:
    """One page's image and text layer."""

    page_num: int
    image: str
    tokens: List[TextToken] = field(default_factory=list)


@dataclass
class RenderedDocument:
    """All rendered pages of a document, in page order."""

    page_count: int
    pages: List[RenderedPage] = field(default_factory=list)

    @property
    def images(self) -> List[str]:
        return [page.image for page in self.pages]

    @property
    def tokens(self) -> List[TextToken]:
        return [token for page in self.pages for token in page.tokens]

    @property
    def has_text_layer(self) -> bool:
        return any(page.tokens for page in self.pages)


def _is_password_error(exc: BaseException) -> bool:
    """pdfplumber wraps pdfminer errors; look one level down as well."""
    if isinstance(exc, PDFPasswordIncorrect):
        return True
    return any(isinstance(arg, PDFPasswordIncorrect) for arg in getattr(exc, "args", ()))


class PdfProcessor:
    """
    Service for rendering PDF pages.

    Features:
    - JPEG rendering at a fixed scale (default 2x, i.e. 144 dpi)
    - Word-level text tokens in PDF coordinates (origin bottom-left)
    - Page cap (first N pages only)
    """

    def __init__(
        self,
        max_pages: int = 5,
        render_scale: float = 2.0,
        jpeg_quality: int = 80,
        max_workers: int = 4,
    ):
        self.max_pages = max_pages
        self.render_scale = render_scale
        self.jpeg_quality = jpeg_quality
        self.max_workers = max_workers

    def process(self, pdf_bytes: bytes) -> RenderedDocument:
        """
        Render the first pages of a PDF.

        Args:
            pdf_bytes: Raw PDF file content.

        Returns:
            RenderedDocument with pages in original order.

        Raises:
            PdfPasswordProtectedError: If the PDF is encrypted.
            PdfProcessingError: If the PDF cannot be opened or has no pages.
        """
        page_count = self._count_pages(pdf_bytes)
        if page_count == 0:
            raise PdfProcessingError("The PDF has no pages.")

        page_numbers = list(range(1, min(page_count, self.max_pages) + 1))
        logger.info("Rendering PDF", page_count=page_count, rendering=len(page_numbers))

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(page_numbers))) as executor:
            # map() yields in submission order, so pages stay ordered
            pages = list(executor.map(lambda n: self._render_page(pdf_bytes, n), page_numbers))

        document = RenderedDocument(page_count=page_count, pages=pages)
        logger.info(
            "PDF rendered",
            pages=len(pages),
            tokens=len(document.tokens),
            has_text_layer=document.has_text_layer,
        )
        return document

    def _count_pages(self, pdf_bytes: bytes) -> int:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                return len(pdf.pages)
        except Exception as e:
            if _is_password_error(e):
                raise PdfPasswordProtectedError() from e
            logger.warning("Failed to open PDF", error=str(e), error_type=type(e).__name__)
            raise PdfProcessingError(details={"reason": str(e)}) from e

    def _render_page(self, pdf_bytes: bytes, page_num: int) -> RenderedPage:
        """Render one page; each worker opens its own handle."""
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                page = pdf.pages[page_num - 1]
                image = self._render_image(page)
                tokens = self.extract_tokens(page, page_num)
        except Exception as e:
            logger.error("Page render failed", page=page_num, error=str(e))
            raise PdfProcessingError(
                f"Failed to render page {page_num}",
                details={"page": page_num, "reason": str(e)},
            ) from e
        return RenderedPage(page_num=page_num, image=image, tokens=tokens)

    def _render_image(self, page) -> str:
        resolution = int(PDF_POINTS_PER_INCH * self.render_scale)
        picture = page.to_image(resolution=resolution).original.convert("RGB")
        buffer = io.BytesIO()
        picture.save(buffer, format="JPEG", quality=self.jpeg_quality)
        return base64.b64encode(buffer.getvalue()).decode("ascii")

    def extract_tokens(self, page, page_num: int) -> List[TextToken]:
        """
        Extract text runs with positions.

        pdfplumber measures `top`/`bottom` from the top edge; tokens use PDF
        space where y grows upward, anchored at the run's baseline.
        """
        words = page.extract_words(keep_blank_chars=True, use_text_flow=True)
        return self.words_to_tokens(words, page_num, float(page.height))

    @staticmethod
    def words_to_tokens(words: List[dict], page_num: int, page_height: float) -> List[TextToken]:
        tokens = []
        for word in words:
            text = (word.get("text") or "").strip()
            if not text:
                continue
            tokens.append(TextToken(
                text=text,
                x=float(word["x0"]),
                y=page_height - float(word["bottom"]),
                width=float(word["x1"]) - float(word["x0"]),
                height=float(word["bottom"]) - float(word["top"]),
                page=page_num,
            ))
        return tokens


def get_pdf_processor(settings=None) -> PdfProcessor:
    """Get a PdfProcessor configured from settings (defaults when omitted)."""
    if settings is None:
        return PdfProcessor()
    return PdfProcessor(
        max_pages=settings.max_pages,
        render_scale=settings.render_scale,
        jpeg_quality=settings.jpeg_quality,
    )