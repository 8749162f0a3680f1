"""Abstract base class for turning uploaded payloads into plain text."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: DocumentTextExtractor (src/providers/extraction/)
class ITextExtractor(ABC):
    """Contract for extracting text from PDF, DOCX, plain-text and Markdown files."""

    @abstractmethod
    def extract(self, payload: bytes, mime_type: str) -> str:
        """Return the text content of *payload*.

        An empty string is a valid result (e.g. a scanned PDF with no text
        layer); deciding what to do with it is the pipeline's concern.

        Raises
        ------
        src.utils.errors.ExtractionFailure
            If the payload is corrupt or *mime_type* is not supported.
        """

    @abstractmethod
    def supported_mime_types(self) -> list[str]:
        """Return the MIME types :meth:`extract` accepts."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this extractor."""
