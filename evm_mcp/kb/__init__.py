"""Local knowledge base: ingestion, chunk storage and keyword search."""

from .models import (
    Chunk,
    FileOutcome,
    IngestReport,
    InvalidInputError,
    KnowledgeBaseError,
    NotFoundError,
    SourceManifest,
)
from .service import KnowledgeBase
from .store import KnowledgeStore

default_kb = KnowledgeBase()

__all__ = [
    "Chunk",
    "FileOutcome",
    "IngestReport",
    "InvalidInputError",
    "KnowledgeBase",
    "KnowledgeBaseError",
    "KnowledgeStore",
    "NotFoundError",
    "SourceManifest",
    "default_kb",
]
