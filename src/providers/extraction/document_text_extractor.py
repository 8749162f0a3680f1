"""Text extraction for uploaded knowledge-base documents.

Reads PDFs with PyMuPDF (fitz) page by page, Word documents with
python-docx (body paragraphs followed by table cells), and plain text /
Markdown as UTF-8 with a Latin-1 fallback.  All work is synchronous and
CPU-bound; the ingestion service calls :meth:`extract` through
``asyncio.to_thread``.
"""

from __future__ import annotations

import io

import docx
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from src.interfaces.text_extractor import ITextExtractor
from src.utils.errors import ExtractionFailure

logger = structlog.get_logger(logger_name=__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TEXT_MIME = "text/plain"
MARKDOWN_MIME = "text/markdown"


class DocumentTextExtractor(ITextExtractor):
    """Extracts text from PDF, DOCX, TXT and Markdown payloads."""

    def extract(self, payload: bytes, mime_type: str) -> str:
        if mime_type == PDF_MIME:
            text = self._extract_pdf(payload)
        elif mime_type == DOCX_MIME:
            text = self._extract_docx(payload)
        elif mime_type in (TEXT_MIME, MARKDOWN_MIME):
            text = self._decode_text(payload)
        else:
            raise ExtractionFailure(
                message=f"Unsupported document type: {mime_type}",
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "text_extracted",
            mime_type=mime_type,
            payload_bytes=len(payload),
            characters=len(text),
        )
        return text

    def supported_mime_types(self) -> list[str]:
        return [PDF_MIME, DOCX_MIME, TEXT_MIME, MARKDOWN_MIME]

    def get_provider_name(self) -> str:
        return "document_text_extractor"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pdf(payload: bytes) -> str:
        try:
            doc = fitz.open(stream=payload, filetype="pdf")
        except Exception as exc:
            raise ExtractionFailure(
                message=f"Could not open PDF: {exc}",
                provider_name="pymupdf",
            ) from exc

        pages: list[str] = []
        try:
            for page in doc:
                text = page.get_text("text").strip()
                if text:
                    pages.append(text)
        except Exception as exc:
            raise ExtractionFailure(
                message=f"Could not read PDF page text: {exc}",
                provider_name="pymupdf",
            ) from exc
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted")
        return "\n\n".join(pages)

    @staticmethod
    def _extract_docx(payload: bytes) -> str:
        try:
            document = docx.Document(io.BytesIO(payload))
        except Exception as exc:
            raise ExtractionFailure(
                message=f"Could not open Word document: {exc}",
                provider_name="python-docx",
            ) from exc

        blocks = [p.text for p in document.paragraphs if p.text.strip()]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    blocks.append(" | ".join(cells))
        return "\n\n".join(blocks)

    @staticmethod
    def _decode_text(payload: bytes) -> str:
        try:
            return payload.decode("utf-8-sig")
        except UnicodeDecodeError:
            logger.info("text_decode_fallback", encoding="latin-1")
            return payload.decode("latin-1")
