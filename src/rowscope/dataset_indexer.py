# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Dataset rows -> Documents -> HybridIndex, with a per-dataset IndexRecord cache.

Each row becomes one document whose content is "col: value, col: value"
in header order. Documents are fed to the index in fixed batches to keep
peak memory flat on large datasets. Indexing always rebuilds a dataset
completely; the cache is never invalidated on its own when the dataset
content changes, callers re-index explicitly.
"""
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

from .hybrid_index import HybridIndex
from .models import (
    CrossDatasetSearch,
    Dataset,
    DatasetMatches,
    Document,
    DocumentMetadata,
    IndexRecord,
    IndexResult,
    SearchOptions,
    SearchResult,
)
from .readers import parse_csv

INDEX_BATCH_SIZE = 10
GROUP_LIMIT = 5


def format_row(row: dict) -> str:
    return ", ".join(f"{key}: {'' if value is None else value}" for key, value in row.items())


class DatasetIndexer:
    def __init__(
        self,
        index: HybridIndex,
        batch_size: int = INDEX_BATCH_SIZE,
        search_defaults: Optional[SearchOptions] = None,
        group_limit: int = GROUP_LIMIT,
        parser: Callable[[str], list[dict]] = parse_csv,
    ):
        self.index = index
        self.batch_size = max(1, batch_size)
        self.search_defaults = search_defaults or SearchOptions(max_results=8)
        self.group_limit = group_limit
        self.parser = parser
        self._cache: dict[str, IndexRecord] = {}
        self._cache_lock = threading.Lock()
        self._dataset_locks: dict[str, threading.Lock] = {}

    @classmethod
    def from_config(cls, config, index: HybridIndex) -> "DatasetIndexer":
        return cls(
            index,
            batch_size=config.index_batch_size,
            search_defaults=SearchOptions(
                max_results=config.search_max_results,
                semantic_weight=config.semantic_weight,
                keyword_weight=config.keyword_weight,
                similarity_threshold=config.similarity_threshold,
            ),
            group_limit=config.dataset_group_limit,
        )

    def _lock_for(self, dataset_id: str) -> threading.Lock:
        with self._cache_lock:
            return self._dataset_locks.setdefault(dataset_id, threading.Lock())

    # ── Indexing ─────────────────────────────────────────

    def index_dataset(self, dataset: Optional[Dataset]) -> IndexResult:
        """Full (re-)index of one dataset. Failures come back as values."""
        if dataset is None or not dataset.content:
            print("No dataset content to index")
            return IndexResult(success=False, error="No content available")

        with self._lock_for(dataset.id):
            return self._index_locked(dataset)

    def index_if_missing(self, dataset: Optional[Dataset]) -> Optional[IndexResult]:
        """Index dataset unless it already has a record. Returns None if it had one.

        The record is checked again under the dataset lock, so concurrent
        first requests for one dataset run a single index.
        """
        if dataset is None or not dataset.content:
            print("No dataset content to index")
            return IndexResult(success=False, error="No content available")
        if self.get_index_status(dataset.id) is not None:
            return None
        with self._lock_for(dataset.id):
            if self.get_index_status(dataset.id) is not None:
                return None
            return self._index_locked(dataset)

    def _index_locked(self, dataset: Dataset) -> IndexResult:
        try:
            rows = self.parser(dataset.content)
        except Exception as e:
            print(f"Warning: could not parse dataset {dataset.name}: {e}")
            return IndexResult(success=False, error=f"Parse error: {e}")
        if not rows:
            return IndexResult(success=False, error="CSV contains no data")

        print(f"Indexing dataset {dataset.name}: {len(rows)} rows")
        removed = self.index.remove_dataset(dataset.id)
        if removed:
            print(f"  [{dataset.name}] dropped {removed} previously indexed rows")

        added = 0
        batch: list[Document] = []
        for row_index, row in enumerate(rows):
            batch.append(self._make_document(dataset, row_index, row))
            if len(batch) >= self.batch_size:
                added += len(self.index.add_documents(batch))
                batch = []
        if batch:
            added += len(self.index.add_documents(batch))

        stats = self.index.stats
        record = IndexRecord(
            dataset_id=dataset.id,
            dataset_name=dataset.name,
            total_rows=len(rows),
            index_stats=stats,
        )
        with self._cache_lock:
            self._cache[dataset.id] = record

        print(f"Index: {dataset.name} -> {added}/{len(rows)} rows embedded")
        return IndexResult(success=True, indexed_rows=len(rows), index_stats=stats)

    def _make_document(self, dataset: Dataset, row_index: int, row: dict) -> Document:
        return Document(
            id=self.index.next_document_id(),
            content=format_row(row),
            metadata=DocumentMetadata(
                dataset_id=dataset.id,
                dataset_name=dataset.name,
                row_index=row_index,
                row_data=dict(row),
            ),
        )

    def ensure_indexed(self, datasets: list[Dataset]) -> dict[str, IndexResult]:
        """Index every dataset without an IndexRecord, one thread each."""
        missing = [ds for ds in datasets if self.get_index_status(ds.id) is None]
        if not missing:
            return {}
        with ThreadPoolExecutor(max_workers=len(missing), thread_name_prefix="index") as pool:
            futures = {ds.id: pool.submit(self.index_if_missing, ds) for ds in missing}
            results = {ds_id: f.result() for ds_id, f in futures.items()}
        return {ds_id: r for ds_id, r in results.items() if r is not None}

    # ── Search ───────────────────────────────────────────

    def search_across_datasets(
        self, query: str, datasets: list[Dataset], options: Optional[SearchOptions] = None,
    ) -> CrossDatasetSearch:
        try:
            print(f"Searching {len(datasets)} datasets for: '{query}'")
            self.ensure_indexed(datasets)

            base = options or self.search_defaults
            scoped = SearchOptions(
                max_results=base.max_results,
                semantic_weight=base.semantic_weight,
                keyword_weight=base.keyword_weight,
                similarity_threshold=base.similarity_threshold,
                include_keyword_score=base.include_keyword_score,
                dataset_ids=frozenset(ds.id for ds in datasets),
            )
            hits = self.index.search(query, scoped)

            grouped: dict[str, list[SearchResult]] = {}
            for hit in hits:
                grouped.setdefault(hit.document.metadata.dataset_id, []).append(hit)

            by_id = {ds.id: ds for ds in datasets}
            results: list[DatasetMatches] = []
            for dataset_id, matches in grouped.items():
                dataset = by_id.get(dataset_id)
                if dataset is None:
                    continue
                results.append(DatasetMatches(
                    dataset=dataset,
                    matches=matches[: self.group_limit],
                    total_matches=len(matches),
                    avg_score=sum(m.hybrid_score for m in matches) / len(matches),
                ))

            return CrossDatasetSearch(
                success=True,
                query=query,
                results=results,
                total_matches=len(hits),
                stats={
                    "datasets_searched": len(datasets),
                    "datasets_matched": len(results),
                    "search_options": scoped.to_dict(),
                },
            )
        except Exception as e:
            print(f"Search error: {e}")
            return CrossDatasetSearch(success=False, query=query, error=str(e))

    # ── Cache bookkeeping ────────────────────────────────

    def get_index_status(self, dataset_id: str) -> Optional[IndexRecord]:
        with self._cache_lock:
            return self._cache.get(dataset_id)

    def cached_datasets(self) -> list[IndexRecord]:
        with self._cache_lock:
            return list(self._cache.values())

    def forget(self, dataset_id: str) -> bool:
        """Drop one dataset's record and documents (e.g. dataset deleted)."""
        with self._cache_lock:
            record = self._cache.pop(dataset_id, None)
            self._dataset_locks.pop(dataset_id, None)
        self.index.remove_dataset(dataset_id)
        return record is not None

    def clear(self):
        with self._cache_lock:
            self._cache.clear()
            self._dataset_locks.clear()
        self.index.clear()
        print("Dataset indexer cleared")

    @property
    def stats(self) -> dict:
        return {
            "cached_datasets": len(self.cached_datasets()),
            "index": self.index.stats,
        }
