# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Entry point: python -m rowscope

Loads the dataset directory, warms up the embedding model and serves the
HTTP API. Datasets are indexed lazily on their first search.
"""
from pathlib import Path

import uvicorn

from .catalog import DatasetCatalog
from .config import Config
from .dataset_indexer import DatasetIndexer
from .embeddings import EmbeddingProvider
from .health import HealthTracker
from .hybrid_index import HybridIndex
from .retrieval import ContextRetriever
from .web import create_web_app


def build_services(config: Config, loader=None):
    """Wire the retrieval pipeline. Returns (catalog, indexer, retriever, health)."""
    health = HealthTracker()
    provider = EmbeddingProvider.from_config(config, loader=loader)
    index = HybridIndex(provider)
    indexer = DatasetIndexer.from_config(config, index)
    retriever = ContextRetriever.from_config(config, indexer, health=health)
    return DatasetCatalog(), indexer, retriever, health


def main():
    config = Config.load()
    catalog, indexer, retriever, health = build_services(config)

    catalog.load_dir(Path(config.datasets_path))

    print(f"Loading embedding model {config.embedding_model} ...")
    full_mode = indexer.index.provider.initialize()
    health.record_embedding_mode(degraded=not full_mode)

    web_app = create_web_app(config, catalog, indexer, retriever, health)
    print(f"API running on http://{config.web_host}:{config.web_port}")
    uvicorn.run(web_app, host=config.web_host, port=config.web_port, log_level="warning")


if __name__ == "__main__":
    main()
