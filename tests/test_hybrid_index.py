"""Tests for the in-memory hybrid index and its scoring math."""
import math
import random
from collections import Counter
from unittest.mock import MagicMock

import pytest

from rowscope.errors import DuplicateDocumentError
from rowscope.hybrid_index import (
    HybridIndex,
    bm25_score,
    corpus_term_frequencies,
    cosine_similarity,
    query_tokens,
    tokenize,
)
from rowscope.models import Document, DocumentMetadata, SearchOptions


def _doc(index: HybridIndex, content: str, dataset_id: str = "ds", row: int = 0) -> Document:
    return Document(
        id=index.next_document_id(),
        content=content,
        metadata=DocumentMetadata(
            dataset_id=dataset_id, dataset_name=dataset_id,
            row_index=row, row_data={"text": content},
        ),
    )


class TestCosineSimilarity:
    def test_identical(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 5.0]) == 0.0

    def test_symmetric_and_bounded(self):
        rng = random.Random(7)
        for _ in range(50):
            a = [rng.uniform(-1, 1) for _ in range(16)]
            b = [rng.uniform(-1, 1) for _ in range(16)]
            ab = cosine_similarity(a, b)
            assert ab == cosine_similarity(b, a)
            assert -1.0 <= ab <= 1.0

    @pytest.mark.parametrize("a,b", [
        ([0.0, 0.0], [1.0, 2.0]),
        ([1.0, 2.0], [0.0, 0.0]),
        ([1.0, 2.0, 3.0], [1.0, 2.0]),
        (None, [1.0]),
        ([1.0], None),
        ([], []),
    ])
    def test_degenerate_inputs_are_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0


class TestTokenizing:
    def test_tokenize_keeps_punctuation(self):
        assert tokenize("High: 152.30, Low") == ["high:", "152.30,", "low"]

    def test_query_tokens_drop_short_words(self):
        assert query_tokens("show me all of the rows") == ["show", "all", "the", "rows"]


class TestBM25:
    def test_known_value(self):
        counts = Counter(["city:", "paris"])
        score = bm25_score(["paris"], counts, 2, 3, Counter({"paris": 1}))
        expected = 0.5 * (math.log(4) / 2) * 1.2 * 1
        assert score == pytest.approx(expected)

    def test_term_missing_from_document(self):
        counts = Counter(["city:", "rome"])
        assert bm25_score(["paris"], counts, 2, 3, Counter({"paris": 1})) == 0.0

    def test_corpus_frequency_multiplies(self):
        counts = Counter(["paris"])
        one = bm25_score(["paris"], counts, 1, 2, Counter({"paris": 1}))
        three = bm25_score(["paris"], counts, 1, 2, Counter({"paris": 3}))
        assert three == pytest.approx(3 * one)

    def test_non_negative(self):
        rng = random.Random(3)
        words = ["alpha", "beta", "gamma", "delta"]
        for _ in range(50):
            doc = [rng.choice(words) for _ in range(rng.randint(1, 8))]
            query = [rng.choice(words) for _ in range(rng.randint(1, 4))]
            corpus = corpus_term_frequencies([Counter(doc)])
            assert bm25_score(query, Counter(doc), len(doc), 5, corpus) >= 0.0

    def test_empty_document(self):
        assert bm25_score(["paris"], Counter(), 0, 3, Counter()) == 0.0

    def test_corpus_term_frequencies(self):
        total = corpus_term_frequencies([Counter(["a", "b"]), Counter(["a"])])
        assert total == Counter({"a": 2, "b": 1})


class TestAddDocuments:
    def test_add_and_get(self, degraded_provider):
        index = HybridIndex(degraded_provider)
        doc = _doc(index, "city: paris")
        index.add_document(doc)
        assert index.get_document(doc.id) is doc
        assert len(index.get_embedding(doc.id)) == 384
        assert len(index) == 1

    def test_ids_are_monotonic(self, degraded_provider):
        index = HybridIndex(degraded_provider)
        assert [index.next_document_id() for _ in range(3)] == [
            "doc-000001", "doc-000002", "doc-000003",
        ]

    def test_duplicate_id_rejected(self, degraded_provider):
        index = HybridIndex(degraded_provider)
        doc = _doc(index, "city: paris")
        index.add_document(doc)
        with pytest.raises(DuplicateDocumentError):
            index.add_document(doc)
        assert len(index) == 1

    def test_batch_skips_failing_entry(self, degraded_provider):
        index = HybridIndex(degraded_provider)
        good1 = _doc(index, "city: paris")
        bad = _doc(index, None)
        good2 = _doc(index, "city: rome")
        added = index.add_documents([good1, bad, good2])
        assert added == [good1, good2]
        assert index.get_document(bad.id) is None
        assert len(index) == 2

    def test_batch_skips_duplicate(self, degraded_provider):
        index = HybridIndex(degraded_provider)
        doc = _doc(index, "city: paris")
        index.add_document(doc)
        assert index.add_documents([doc]) == []

    def test_remove_dataset(self, degraded_provider):
        index = HybridIndex(degraded_provider)
        index.add_documents([_doc(index, "a", "one"), _doc(index, "b", "two"), _doc(index, "c", "one")])
        assert index.remove_dataset("one") == 2
        assert [d.content for d in index.documents()] == ["b"]

    def test_clear_and_stats(self, degraded_provider):
        index = HybridIndex(degraded_provider)
        index.add_documents([_doc(index, "a", "one"), _doc(index, "b", "two")])
        s = index.stats
        assert s["total_documents"] == 2
        assert s["total_embeddings"] == 2
        assert s["datasets"] == 2
        assert s["embedding_degraded"] is True
        index.clear()
        assert index.stats["total_documents"] == 0


class TestSearch:
    @pytest.fixture
    def cities(self, model_provider):
        index = HybridIndex(model_provider)
        index.add_documents([
            _doc(index, "city: paris", row=0),
            _doc(index, "city: berlin", row=1),
            _doc(index, "city: rome", row=2),
        ])
        return index

    def test_keyword_lifts_match_over_threshold(self, cities):
        results = cities.search("paris")
        assert [r.document.content for r in results] == ["city: paris"]
        hit = results[0]
        assert hit.semantic_score == pytest.approx(1.0)
        assert hit.keyword_score == pytest.approx(0.5 * (math.log(4) / 2) * 1.2)
        assert hit.hybrid_score == pytest.approx(0.6 + 0.4 * hit.keyword_score)

    def test_never_below_threshold(self, cities):
        for threshold in (0.0, 0.5, 0.6, 0.65, 0.7, 0.8):
            results = cities.search("paris rome", SearchOptions(similarity_threshold=threshold))
            assert all(r.hybrid_score >= threshold for r in results)

    def test_ties_keep_insertion_order(self, cities):
        options = SearchOptions(similarity_threshold=0.0, include_keyword_score=False)
        results = cities.search("anything", options)
        assert [r.document.metadata.row_index for r in results] == [0, 1, 2]
        assert all(r.keyword_score == 0.0 for r in results)

    def test_sorted_descending(self, cities):
        results = cities.search("rome", SearchOptions(similarity_threshold=0.0))
        scores = [r.hybrid_score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert results[0].document.content == "city: rome"

    def test_max_results(self, cities):
        options = SearchOptions(similarity_threshold=0.0, max_results=2)
        assert len(cities.search("x", options)) == 2

    def test_dataset_scope(self, model_provider):
        index = HybridIndex(model_provider)
        index.add_documents([_doc(index, "city: paris", "a"), _doc(index, "city: paris", "b")])
        options = SearchOptions(similarity_threshold=0.0, dataset_ids=frozenset({"b"}))
        results = index.search("paris", options)
        assert [r.document.metadata.dataset_id for r in results] == ["b"]

    def test_empty_index(self, degraded_provider):
        assert HybridIndex(degraded_provider).search("paris") == []

    def test_internal_failure_returns_empty(self):
        provider = MagicMock()
        provider.embed.side_effect = RuntimeError("boom")
        assert HybridIndex(provider).search("paris") == []

    def test_mismatched_dimension_scores_zero(self, degraded_provider):
        index = HybridIndex(degraded_provider)
        doc = _doc(index, "city: paris")
        index.add_document(doc, embedding=[1.0, 0.0, 0.0])
        results = index.search("paris", SearchOptions(similarity_threshold=0.0))
        assert results[0].semantic_score == 0.0
