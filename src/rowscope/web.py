# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
HTTP API (FastAPI) – dataset upload, indexing, search and context retrieval.

All state (config, catalog, indexer, retriever, health) is injected via
create_web_app(). Indexing and retrieval endpoints are plain `def` so
FastAPI runs them in its worker threadpool.
"""
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .catalog import DatasetCatalog
from .config import Config
from .dataset_indexer import DatasetIndexer
from .health import HealthTracker
from .models import Dataset
from .prompt import build_messages, limited_mode_reply
from .retrieval import ContextRetriever


class DatasetUpload(BaseModel):
    name: str = Field(min_length=1)
    content: str
    id: Optional[str] = None


class SearchRequest(BaseModel):
    query: str
    dataset_ids: Optional[list[str]] = None


class ContextRequest(BaseModel):
    dataset_id: str
    query: str
    include_trace: bool = False


class PromptRequest(BaseModel):
    dataset_id: str
    message: str
    template: Optional[str] = None


def create_web_app(
    config: Config,
    catalog: DatasetCatalog,
    indexer: DatasetIndexer,
    retriever: ContextRetriever,
    health: HealthTracker | None = None,
) -> FastAPI:
    """Factory: returns a FastAPI app bound to the given services."""

    app = FastAPI(
        title="Rowscope",
        description="Grounding context retrieval over tabular datasets",
    )

    def _dataset_or_404(dataset_id: str) -> Dataset:
        dataset = catalog.get(dataset_id)
        if dataset is None:
            raise HTTPException(status_code=404, detail=f"Unknown dataset '{dataset_id}'")
        return dataset

    # ── Health ───────────────────────────────────────

    @app.get("/health")
    async def health_check():
        from . import __version__
        status = health.status if health else {}
        return {
            "status": "ok" if (not health or health.is_healthy) else "degraded",
            "version": __version__,
            "datasets": len(catalog),
            "documents": len(indexer.index),
            "embedding_degraded": indexer.index.provider.is_degraded,
            "last_index_at": status.get("last_index_at"),
            "last_index_ok": status.get("last_index_ok"),
        }

    @app.get("/api/health")
    async def health_detail():
        return health.status if health else {}

    @app.get("/api/config")
    async def get_config():
        return {"config": config.to_safe_dict()}

    # ── Datasets ─────────────────────────────────────

    @app.get("/api/datasets")
    async def list_datasets():
        out = []
        for ds in catalog.all():
            record = indexer.get_index_status(ds.id)
            entry = ds.to_dict()
            entry["indexed"] = record is not None
            entry["indexed_at"] = record.indexed_at if record else None
            out.append(entry)
        return {"count": len(out), "datasets": out}

    @app.post("/api/datasets")
    async def upload_dataset(req: DatasetUpload):
        dataset = catalog.add(req.name, req.content, dataset_id=req.id)
        if req.id is not None:
            indexer.forget(dataset.id)
        return {"status": "success", "dataset": dataset.to_dict()}

    @app.delete("/api/datasets/{dataset_id:path}")
    async def delete_dataset(dataset_id: str):
        _dataset_or_404(dataset_id)
        catalog.remove(dataset_id)
        indexer.forget(dataset_id)
        return {"status": "success", "message": f"Dataset '{dataset_id}' removed"}

    @app.post("/api/index/{dataset_id:path}")
    def index_dataset(dataset_id: str):
        dataset = _dataset_or_404(dataset_id)
        result = indexer.index_dataset(dataset)
        if health:
            health.record_index(
                ok=result.success, rows=result.indexed_rows,
                dataset_id=dataset.id, error=result.error,
            )
        return result.to_dict()

    @app.get("/api/status/{dataset_id:path}")
    async def index_status(dataset_id: str):
        _dataset_or_404(dataset_id)
        record = indexer.get_index_status(dataset_id)
        return {"dataset_id": dataset_id, "indexed": record is not None,
                "record": record.to_dict() if record else None}

    # ── Retrieval ────────────────────────────────────

    @app.post("/api/search")
    def search(req: SearchRequest):
        if req.dataset_ids is None:
            datasets = catalog.all()
        else:
            datasets = [_dataset_or_404(ds_id) for ds_id in req.dataset_ids]
        return indexer.search_across_datasets(req.query, datasets).to_dict()

    @app.post("/api/context")
    def get_context(req: ContextRequest):
        dataset = _dataset_or_404(req.dataset_id)
        trace = retriever.trace(dataset, req.query)
        out = {
            "dataset_id": dataset.id,
            "query": req.query,
            "stage": trace.stage,
            "context": trace.context,
        }
        if req.include_trace:
            out["trace"] = trace.to_dict()
        return out

    @app.post("/api/prompt")
    def get_prompt(req: PromptRequest):
        dataset = _dataset_or_404(req.dataset_id)
        context = retriever.retrieve(dataset, req.message)
        template = req.template or config.system_prompt
        return {
            "dataset_id": dataset.id,
            "context": context,
            "messages": build_messages(req.message, context, template),
            "limited_reply": limited_mode_reply(req.message, context),
        }

    # ── Maintenance ──────────────────────────────────

    @app.get("/api/stats")
    async def get_stats():
        return {
            "datasets": len(catalog),
            "indexer": indexer.stats,
            "embeddings": indexer.index.provider.stats,
            "cached": [r.to_dict() for r in indexer.cached_datasets()],
        }

    @app.post("/api/clear")
    async def clear_index():
        indexer.clear()
        return {"status": "success", "message": "Index cleared"}

    return app
