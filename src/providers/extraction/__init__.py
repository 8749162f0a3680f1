"""Text extraction providers for uploaded documents."""

from src.providers.extraction.document_text_extractor import DocumentTextExtractor

__all__ = ["DocumentTextExtractor"]
