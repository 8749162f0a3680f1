"""Public interface definitions for all external service providers.

Every external service the knowledge base touches (embedding model,
storage, document parsing libraries) is accessed through the abstract base
classes defined here.  Concrete adapters live in ``src/providers/`` and are
wired together in ``src/main.py``; tests inject fakes instead.

CONCRETE PROVIDER MAP:
    Interface              ->  Concrete implementations (in src/providers/)
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider     ->  OpenAIEmbeddingProvider, NomicEmbeddingProvider
    IVectorStoreProvider   ->  SQLiteVectorStore
    IDocumentRepository    ->  SQLiteVectorStore
    ITextExtractor         ->  DocumentTextExtractor
"""

from src.interfaces.document_repository import IDocumentRepository
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.text_extractor import ITextExtractor
from src.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IDocumentRepository",
    "IEmbeddingProvider",
    "ITextExtractor",
    "IVectorStoreProvider",
]
