"""Retrieval orchestration components."""

from .hybrid import HybridRetriever, fuse_scores, min_max_normalize
from .lexical import LexicalIndex
from .rerank import Reranker
from .search import SearchService
from .vector_store import VectorStore

__all__ = [
    "HybridRetriever",
    "LexicalIndex",
    "VectorStore",
    "Reranker",
    "SearchService",
    "fuse_scores",
    "min_max_normalize",
]
