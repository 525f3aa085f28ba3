# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Centralized health/status tracker – shared across indexer, retriever, web UI.
Thread-safe, no external dependencies.
"""
import threading
from datetime import datetime, timezone
from typing import Optional


class HealthTracker:
    def __init__(self):
        self._lock = threading.Lock()
        self._data = {
            "last_index_at": None,
            "last_index_ok": False,
            "last_index_rows": 0,
            "last_index_dataset": None,
            "last_index_error": None,
            "indexed_datasets": 0,
            "failed_indexings": 0,

            "embedding_degraded": None,
            "started_at": datetime.now(timezone.utc).isoformat(),

            "contexts_total": 0,
            "contexts_empty": 0,
            "contexts_by_stage": {},
            "last_context_at": None,
            "last_context_chars": 0,
        }

    def record_index(
        self, ok: bool, rows: int = 0, dataset_id: Optional[str] = None,
        error: Optional[str] = None,
    ):
        with self._lock:
            self._data["last_index_at"] = datetime.now(timezone.utc).isoformat()
            self._data["last_index_ok"] = ok
            self._data["last_index_rows"] = rows
            self._data["last_index_dataset"] = dataset_id
            self._data["last_index_error"] = error
            if ok:
                self._data["indexed_datasets"] += 1
            else:
                self._data["failed_indexings"] += 1

    def record_context(self, stage: Optional[str], chars: int = 0):
        with self._lock:
            self._data["contexts_total"] += 1
            if stage is None:
                self._data["contexts_empty"] += 1
            else:
                by_stage = self._data["contexts_by_stage"]
                by_stage[stage] = by_stage.get(stage, 0) + 1
            self._data["last_context_at"] = datetime.now(timezone.utc).isoformat()
            self._data["last_context_chars"] = chars

    def record_embedding_mode(self, degraded: bool):
        with self._lock:
            self._data["embedding_degraded"] = degraded

    @property
    def status(self) -> dict:
        with self._lock:
            data = dict(self._data)
            data["contexts_by_stage"] = dict(self._data["contexts_by_stage"])
            return data

    @property
    def is_healthy(self) -> bool:
        """Healthy until an indexing run has failed without a later success."""
        with self._lock:
            if self._data["last_index_at"] is None:
                return True
            return self._data["last_index_ok"]
