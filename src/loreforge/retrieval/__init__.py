"""Fact retrieval: collaborator protocol and the YAML-backed canon index."""

from loreforge.retrieval.base import FactRetriever, RetrievalResult
from loreforge.retrieval.canon_index import CanonChunk, CanonFileError, CanonIndex

__all__ = [
    "CanonChunk",
    "CanonFileError",
    "CanonIndex",
    "FactRetriever",
    "RetrievalResult",
]
