# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Value types shared by the indexer, the hybrid index and the retriever.

Dataset  -> supplied by the caller (immutable snapshot per call)
Document -> one per dataset row, owned by the HybridIndex
IndexRecord -> cached proof that a dataset was indexed
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Dataset:
    id: str
    name: str
    content: Optional[str] = None

    def to_dict(self, include_content: bool = False) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "chars": len(self.content or ""),
        }
        if include_content:
            d["content"] = self.content
        return d


@dataclass
class DocumentMetadata:
    dataset_id: str
    dataset_name: str
    row_index: int
    row_data: dict[str, str]
    content_type: str = "csv_row"
    created_at: str = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "dataset_id": self.dataset_id,
            "dataset_name": self.dataset_name,
            "row_index": self.row_index,
            "row_data": dict(self.row_data),
            "content_type": self.content_type,
            "created_at": self.created_at,
        }


@dataclass
class Document:
    id: str
    content: str
    metadata: DocumentMetadata

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True)
class IndexRecord:
    dataset_id: str
    dataset_name: str
    total_rows: int
    index_stats: dict
    indexed_at: str = field(default_factory=_now)

    def to_dict(self) -> dict:
        return {
            "dataset_id": self.dataset_id,
            "dataset_name": self.dataset_name,
            "indexed_at": self.indexed_at,
            "total_rows": self.total_rows,
            "index_stats": dict(self.index_stats),
        }


@dataclass
class IndexResult:
    success: bool
    indexed_rows: int = 0
    index_stats: Optional[dict] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error}
        return {
            "success": True,
            "indexed_rows": self.indexed_rows,
            "index_stats": self.index_stats,
        }


@dataclass
class SearchOptions:
    """Knobs for HybridIndex.search.

    dataset_ids restricts scoring (and the corpus statistics used for
    BM25) to documents of the given datasets; None searches everything.
    """

    max_results: int = 10
    semantic_weight: float = 0.6
    keyword_weight: float = 0.4
    similarity_threshold: float = 0.7
    include_keyword_score: bool = True
    dataset_ids: Optional[frozenset[str]] = None

    def to_dict(self) -> dict:
        return {
            "max_results": self.max_results,
            "semantic_weight": self.semantic_weight,
            "keyword_weight": self.keyword_weight,
            "similarity_threshold": self.similarity_threshold,
            "include_keyword_score": self.include_keyword_score,
            "dataset_ids": sorted(self.dataset_ids) if self.dataset_ids is not None else None,
        }


@dataclass
class SearchResult:
    document: Document
    hybrid_score: float
    semantic_score: float
    keyword_score: float

    def to_dict(self) -> dict:
        return {
            "document": self.document.to_dict(),
            "hybrid_score": self.hybrid_score,
            "semantic_score": self.semantic_score,
            "keyword_score": self.keyword_score,
        }


@dataclass
class DatasetMatches:
    dataset: Dataset
    matches: list[SearchResult]
    total_matches: int
    avg_score: float

    def to_dict(self) -> dict:
        return {
            "dataset": self.dataset.to_dict(),
            "matches": [m.to_dict() for m in self.matches],
            "total_matches": self.total_matches,
            "avg_score": self.avg_score,
        }


@dataclass
class CrossDatasetSearch:
    success: bool
    query: str
    results: list[DatasetMatches] = field(default_factory=list)
    total_matches: int = 0
    stats: dict = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "query": self.query, "error": self.error}
        return {
            "success": True,
            "query": self.query,
            "results": [r.to_dict() for r in self.results],
            "total_matches": self.total_matches,
            "stats": self.stats,
        }
