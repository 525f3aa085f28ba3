# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Context retrieval for one (dataset, query) pair.

The dataset is indexed on first use, then an ordered pipeline of stages
runs until one produces a context:

  1. hybrid          semantic + BM25 search over the dataset's rows
  2. general_sample  broad questions ("show me ...") get the first rows
  3. keyword         substring scoring over the raw rows
  4. sample          first rows, marked as "no specific matches"

Every stage returns Hit(context) or Miss(reason). A stage that raises
is recorded as a Miss so the next stage still runs; retrieve() always
returns a string, empty only for a dataset without content.

The trace records the index state transitions of the call: not_indexed,
then indexing while the first index runs, then indexed or not_indexed.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Union

from .dataset_indexer import DatasetIndexer, format_row
from .health import HealthTracker
from .models import Dataset, SearchOptions
from .readers import parse_csv

STOP_WORDS = frozenset({"the", "and", "or", "but", "in", "on", "at", "to", "for"})

GENERAL_QUERY_PATTERNS = (
    "show", "show me", "what", "tell", "give", "list", "data",
    "help", "info", "information", "summary",
)


@dataclass(frozen=True)
class Hit:
    stage: str
    context: str


@dataclass(frozen=True)
class Miss:
    stage: str
    reason: str


StageOutcome = Union[Hit, Miss]


@dataclass
class RetrievalTrace:
    dataset_id: Optional[str]
    query: str
    index_state: str = "not_indexed"
    index_states: list[str] = field(default_factory=lambda: ["not_indexed"])
    outcomes: list[StageOutcome] = field(default_factory=list)
    finished_at: Optional[str] = None

    def set_index_state(self, state: str):
        self.index_state = state
        self.index_states.append(state)

    @property
    def hit(self) -> Optional[Hit]:
        for outcome in self.outcomes:
            if isinstance(outcome, Hit):
                return outcome
        return None

    @property
    def context(self) -> str:
        hit = self.hit
        return hit.context if hit else ""

    @property
    def stage(self) -> Optional[str]:
        hit = self.hit
        return hit.stage if hit else None

    def to_dict(self) -> dict:
        return {
            "dataset_id": self.dataset_id,
            "query": self.query,
            "index_state": self.index_state,
            "index_states": list(self.index_states),
            "stage": self.stage,
            "outcomes": [
                {"stage": o.stage, "hit": True} if isinstance(o, Hit)
                else {"stage": o.stage, "hit": False, "reason": o.reason}
                for o in self.outcomes
            ],
            "finished_at": self.finished_at,
        }


def query_terms(query: str) -> list[str]:
    """Lowercased query words, minus stop words and single characters."""
    return [
        word for word in query.lower().split()
        if len(word) > 1 and word not in STOP_WORDS
    ]


def is_general_query(query: str) -> bool:
    lowered = query.lower()
    return any(pattern in lowered for pattern in GENERAL_QUERY_PATTERNS)


def score_rows(rows: list[dict], terms: list[str], chunk_size: int = 1000) -> list[tuple[int, int]]:
    """Keyword relevance per row as (row_index, score), best first.

    Per term: +1 if the joined row text contains it, +2 for every field
    value that contains it. Rows scoring 0 are dropped; ties keep row
    order. Rows are walked in chunks of chunk_size.
    """
    scored: list[tuple[int, int]] = []
    chunk_size = max(1, chunk_size)
    for start in range(0, len(rows), chunk_size):
        for offset, row in enumerate(rows[start : start + chunk_size]):
            values = ["" if v is None else str(v).lower() for v in row.values()]
            row_text = " ".join(values)
            score = 0
            for term in terms:
                if term in row_text:
                    score += 1
                score += 2 * sum(1 for value in values if term in value)
            if score > 0:
                scored.append((start + offset, score))
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored


class _Rows:
    """Parses dataset content at most once, on first access."""

    def __init__(self, content: str, parser: Callable[[str], list[dict]]):
        self._content = content
        self._parser = parser
        self._rows: Optional[list[dict]] = None

    def get(self) -> list[dict]:
        if self._rows is None:
            self._rows = self._parser(self._content)
        return self._rows


@dataclass
class _Request:
    dataset: Dataset
    query: str
    rows: _Rows


class ContextRetriever:
    def __init__(
        self,
        indexer: DatasetIndexer,
        health: Optional[HealthTracker] = None,
        parser: Callable[[str], list[dict]] = parse_csv,
        search_options: Optional[SearchOptions] = None,
        max_results: int = 5,
        general_sample_rows: int = 5,
        fallback_sample_rows: int = 3,
        chunk_size: int = 1000,
    ):
        self.indexer = indexer
        self.health = health
        self.parser = parser
        self.search_options = search_options or SearchOptions(max_results=8)
        self.max_results = max_results
        self.general_sample_rows = general_sample_rows
        self.fallback_sample_rows = fallback_sample_rows
        self.chunk_size = chunk_size
        self.stages: list[tuple[str, Callable[[_Request], StageOutcome]]] = [
            ("hybrid", self._hybrid_stage),
            ("general_sample", self._general_stage),
            ("keyword", self._keyword_stage),
            ("sample", self._sample_stage),
        ]

    @classmethod
    def from_config(cls, config, indexer: DatasetIndexer, health=None) -> "ContextRetriever":
        return cls(
            indexer,
            health=health,
            search_options=SearchOptions(
                max_results=config.search_max_results,
                semantic_weight=config.semantic_weight,
                keyword_weight=config.keyword_weight,
                similarity_threshold=config.similarity_threshold,
            ),
            max_results=config.context_max_results,
            general_sample_rows=config.general_sample_rows,
            fallback_sample_rows=config.fallback_sample_rows,
            chunk_size=config.keyword_chunk_size,
        )

    # ── Entry points ─────────────────────────────────────

    def retrieve(self, dataset: Optional[Dataset], query: str) -> str:
        return self.trace(dataset, query).context

    def trace(self, dataset: Optional[Dataset], query: str) -> RetrievalTrace:
        query = query or ""
        trace = RetrievalTrace(dataset_id=dataset.id if dataset else None, query=query)
        if dataset is None or not dataset.content:
            print("No dataset content available")
            trace.outcomes.append(Miss("content", "dataset has no content"))
            return self._finish(trace)

        self._ensure_indexed(dataset, trace)
        request = _Request(dataset=dataset, query=query, rows=_Rows(dataset.content, self.parser))

        for name, stage in self.stages:
            try:
                outcome = stage(request)
            except Exception as e:
                print(f"Warning: {name} stage failed for {dataset.name}: {e}")
                outcome = Miss(name, f"error: {e}")
            trace.outcomes.append(outcome)
            if isinstance(outcome, Hit):
                break

        if trace.hit is None:
            print(f"No context produced for dataset {dataset.name}")
        return self._finish(trace)

    def _finish(self, trace: RetrievalTrace) -> RetrievalTrace:
        trace.finished_at = datetime.now(timezone.utc).isoformat()
        if self.health:
            self.health.record_context(trace.stage, chars=len(trace.context))
        return trace

    def _ensure_indexed(self, dataset: Dataset, trace: RetrievalTrace):
        if self.indexer.get_index_status(dataset.id) is not None:
            trace.set_index_state("indexed")
            return
        trace.set_index_state("indexing")
        print(f"Indexing dataset: {dataset.name}")
        try:
            result = self.indexer.index_if_missing(dataset)
        except Exception as e:
            print(f"Warning: indexing {dataset.name} failed: {e}")
            trace.set_index_state("not_indexed")
            return
        if result is None:
            # indexed by a concurrent caller while we waited on the dataset lock
            trace.set_index_state("indexed")
            return
        if self.health:
            self.health.record_index(
                ok=result.success, rows=result.indexed_rows,
                dataset_id=dataset.id, error=result.error,
            )
        trace.set_index_state("indexed" if result.success else "not_indexed")

    # ── Stages ───────────────────────────────────────────

    def _hybrid_stage(self, req: _Request) -> StageOutcome:
        base = self.search_options
        options = SearchOptions(
            max_results=base.max_results,
            semantic_weight=base.semantic_weight,
            keyword_weight=base.keyword_weight,
            similarity_threshold=base.similarity_threshold,
            include_keyword_score=base.include_keyword_score,
            dataset_ids=frozenset({req.dataset.id}),
        )
        results = self.indexer.index.search(req.query, options)
        if not results:
            return Miss("hybrid", "no results above threshold")

        best = results[: self.max_results]
        lines = []
        for i, result in enumerate(best, 1):
            meta = result.document.metadata
            lines.append(
                f"{i}. [{meta.dataset_name} - Row {meta.row_index + 1}]\n"
                f"   {format_row(meta.row_data)}"
            )
        header = f"Semantic search results from dataset {req.dataset.name} ({len(best)} matches):"
        return Hit("hybrid", header + "\n" + "\n".join(lines))

    def _general_stage(self, req: _Request) -> StageOutcome:
        if not is_general_query(req.query) and query_terms(req.query):
            return Miss("general_sample", "specific query")
        rows = req.rows.get()[: self.general_sample_rows]
        if not rows:
            return Miss("general_sample", "no rows")
        lines = [f"{i}. {format_row(row)}" for i, row in enumerate(rows, 1)]
        header = f"Keyword search from dataset {req.dataset.name} (sample data):"
        return Hit("general_sample", header + "\n" + "\n".join(lines))

    def _keyword_stage(self, req: _Request) -> StageOutcome:
        terms = query_terms(req.query)
        if not terms:
            return Miss("keyword", "no query terms")
        rows = req.rows.get()
        scored = score_rows(rows, terms, self.chunk_size)
        print(f"Keyword search: {len(scored)} relevant rows out of {len(rows)}")
        if not scored:
            return Miss("keyword", "no keyword matches")
        top = scored[: self.max_results]
        lines = [format_row(rows[index]) for index, _ in top]
        header = f"Keyword search from dataset {req.dataset.name} ({len(top)} relevant rows):"
        return Hit("keyword", header + "\n" + "\n".join(lines))

    def _sample_stage(self, req: _Request) -> StageOutcome:
        rows = req.rows.get()[: self.fallback_sample_rows]
        if not rows:
            return Miss("sample", "no rows")
        lines = [format_row(row) for row in rows]
        header = (
            f"Keyword search from dataset {req.dataset.name} "
            f"(sample data, no specific matches):"
        )
        return Hit("sample", header + "\n" + "\n".join(lines))
