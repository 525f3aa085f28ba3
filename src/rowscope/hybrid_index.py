# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
In-memory hybrid index: documents + embeddings for one logical collection.

Scoring per document:
  semantic = cosine(query_embedding, doc_embedding)
  keyword  = simplified BM25 (see bm25_score)
  hybrid   = semantic * semantic_weight + keyword * keyword_weight

Only documents with hybrid >= similarity_threshold are returned, best
first; equal scores keep insertion order.
"""
import itertools
import math
import re
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np

from .embeddings import EmbeddingProvider
from .errors import DuplicateDocumentError
from .models import Document, SearchOptions, SearchResult

BM25_K1 = 1.2
MIN_QUERY_TERM_LEN = 3

_WHITESPACE = re.compile(r"\s+")


def tokenize(text: str) -> list[str]:
    """Lowercase and split on whitespace runs (punctuation is kept)."""
    return _WHITESPACE.split(text.lower())


def query_tokens(query: str) -> list[str]:
    return [t for t in tokenize(query) if len(t) >= MIN_QUERY_TERM_LEN]


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine of the angle between a and b.

    Returns 0.0 when either vector is missing, the lengths differ, or
    either vector has zero norm.
    """
    if a is None or b is None or len(a) != len(b) or len(a) == 0:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.sqrt(np.dot(va, va)))
    norm_b = float(np.sqrt(np.dot(vb, vb)))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    sim = float(np.dot(va, vb)) / (norm_a * norm_b)
    if not math.isfinite(sim):
        return 0.0
    return max(-1.0, min(1.0, sim))


def corpus_term_frequencies(term_counts: Iterable[Counter]) -> Counter:
    """Sum per-document token counts into corpus-wide frequencies."""
    total: Counter = Counter()
    for counts in term_counts:
        total.update(counts)
    return total


def bm25_score(
    terms: list[str],
    doc_counts: Counter,
    doc_length: int,
    corpus_size: int,
    term_frequency: Counter,
) -> float:
    """Simplified BM25.

    For each query term:
      idf = ln(1 + corpus_size) / (1 + doc_tf)
      tf  = doc_tf / doc_length
      score += tf * idf * k1 * corpus_tf
    A term missing from the corpus counts with corpus_tf = 1.
    """
    if doc_length <= 0:
        return 0.0
    corpus_size = max(corpus_size, 1)
    score = 0.0
    for term in terms:
        corpus_tf = term_frequency.get(term) or 1
        doc_tf = doc_counts.get(term, 0)
        idf = math.log(1 + corpus_size) / (1 + doc_tf)
        tf = doc_tf / doc_length
        score += tf * idf * BM25_K1 * corpus_tf
    return score


@dataclass
class _Entry:
    document: Document
    embedding: np.ndarray
    term_counts: Counter
    length: int


class HybridIndex:
    def __init__(self, provider: EmbeddingProvider):
        self.provider = provider
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.RLock()
        self._ids = itertools.count(1)

    def next_document_id(self) -> str:
        with self._lock:
            return f"doc-{next(self._ids):06d}"

    # ── Writes ───────────────────────────────────────────

    def add_document(self, doc: Document, embedding: Optional[Sequence[float]] = None) -> str:
        """Embed (unless an embedding is given) and store one document."""
        with self._lock:
            if doc.id in self._entries:
                raise DuplicateDocumentError(doc.id)
        if embedding is None:
            embedding = self.provider.embed(doc.content)
        tokens = tokenize(doc.content)
        entry = _Entry(
            document=doc,
            embedding=np.asarray(embedding, dtype=np.float64),
            term_counts=Counter(tokens),
            length=len(tokens),
        )
        with self._lock:
            if doc.id in self._entries:
                raise DuplicateDocumentError(doc.id)
            self._entries[doc.id] = entry
        return doc.id

    def add_documents(self, batch: list[Document]) -> list[Document]:
        """Add a batch; a failing entry is reported and skipped."""
        if not batch:
            return []
        try:
            embeddings = self.provider.embed_batch([d.content for d in batch])
        except Exception as e:
            print(f"Warning: batch embedding failed ({e}), embedding per document")
            embeddings = [None] * len(batch)

        added: list[Document] = []
        for doc, embedding in zip(batch, embeddings):
            try:
                self.add_document(doc, embedding)
                added.append(doc)
            except Exception as e:
                print(f"Warning: failed to add document {doc.id}: {e}")
        return added

    def remove_dataset(self, dataset_id: str) -> int:
        with self._lock:
            doomed = [
                doc_id for doc_id, entry in self._entries.items()
                if entry.document.metadata.dataset_id == dataset_id
            ]
            for doc_id in doomed:
                del self._entries[doc_id]
        return len(doomed)

    def clear(self):
        with self._lock:
            self._entries.clear()

    # ── Reads ────────────────────────────────────────────

    def get_document(self, doc_id: str) -> Optional[Document]:
        with self._lock:
            entry = self._entries.get(doc_id)
        return entry.document if entry else None

    def get_embedding(self, doc_id: str) -> Optional[list[float]]:
        with self._lock:
            entry = self._entries.get(doc_id)
        return entry.embedding.tolist() if entry else None

    def documents(self, dataset_id: Optional[str] = None) -> list[Document]:
        with self._lock:
            entries = list(self._entries.values())
        return [
            e.document for e in entries
            if dataset_id is None or e.document.metadata.dataset_id == dataset_id
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _snapshot(self, dataset_ids: Optional[frozenset[str]]) -> list[_Entry]:
        with self._lock:
            entries = list(self._entries.values())
        if dataset_ids is None:
            return entries
        return [e for e in entries if e.document.metadata.dataset_id in dataset_ids]

    def search(self, query: str, options: Optional[SearchOptions] = None) -> list[SearchResult]:
        """Rank stored documents against query. Never raises."""
        options = options or SearchOptions()
        try:
            query_embedding = np.asarray(self.provider.embed(query), dtype=np.float64)
            entries = self._snapshot(options.dataset_ids)
            if not entries:
                return []

            term_frequency = corpus_term_frequencies(e.term_counts for e in entries)
            corpus_size = len(entries)
            terms = query_tokens(query)

            results: list[SearchResult] = []
            for entry in entries:
                semantic = cosine_similarity(query_embedding, entry.embedding)
                keyword = 0.0
                if options.include_keyword_score:
                    keyword = bm25_score(
                        terms, entry.term_counts, entry.length,
                        corpus_size, term_frequency,
                    )
                hybrid = semantic * options.semantic_weight + keyword * options.keyword_weight
                if hybrid >= options.similarity_threshold:
                    results.append(SearchResult(
                        document=entry.document,
                        hybrid_score=hybrid,
                        semantic_score=semantic,
                        keyword_score=keyword,
                    ))

            results.sort(key=lambda r: r.hybrid_score, reverse=True)
            top = results[: max(options.max_results, 0)]
            print(
                f"Search: '{query}' -> {len(top)} of {len(entries)} documents "
                f"above threshold {options.similarity_threshold}"
            )
            return top
        except Exception as e:
            print(f"Search error: {e}")
            return []

    @property
    def stats(self) -> dict:
        with self._lock:
            entries = list(self._entries.values())
        return {
            "total_documents": len(entries),
            "total_embeddings": sum(1 for e in entries if e.embedding.size > 0),
            "datasets": len({e.document.metadata.dataset_id for e in entries}),
            "embedding_dim": self.provider.dim,
            "embedding_degraded": self.provider.is_degraded,
        }
