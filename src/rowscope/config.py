# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Central configuration – configurable via:
1. Environment variables (ROWSCOPE_ prefix)
2. .env file
3. JSON override file (default /data/config.json)
"""
import json
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings

CONFIG_FILE = Path("/data/config.json")


class Config(BaseSettings):
    # ── Datasets ─────────────────────────────────
    datasets_path: str = "/data/datasets"

    # ── Embeddings ───────────────────────────────
    embedding_model: str = "all-MiniLM-L6-v2"
    embedding_dim: int = 384
    embed_batch_size: int = 5
    embed_batch_pause: float = 0.01

    # ── Indexing ─────────────────────────────────
    index_batch_size: int = 10

    # ── Hybrid search ────────────────────────────
    search_max_results: int = 8
    semantic_weight: float = 0.6
    keyword_weight: float = 0.4
    similarity_threshold: float = 0.7
    dataset_group_limit: int = 5

    # ── Context assembly ─────────────────────────
    context_max_results: int = 5
    general_sample_rows: int = 5
    fallback_sample_rows: int = 3
    keyword_chunk_size: int = 1000
    system_prompt: str = "You are a helpful AI assistant."

    # ── Server ───────────────────────────────────
    web_host: str = "0.0.0.0"
    web_port: int = 8080

    class Config:
        env_prefix = "ROWSCOPE_"
        env_file = ".env"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load config: ENV -> .env -> JSON override file."""
        config = cls()
        config_file = path or CONFIG_FILE

        if config_file.exists():
            try:
                overrides = json.loads(config_file.read_text())
                for key, value in overrides.items():
                    if hasattr(config, key) and value != "":
                        setattr(config, key, value)
            except Exception as e:
                print(f"Warning: Config file error: {e}")

        return config

    def save(self, path: Optional[Path] = None):
        config_file = path or CONFIG_FILE
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(
            json.dumps(self.model_dump(), indent=2, default=str)
        )

    def to_safe_dict(self) -> dict:
        """Config for display (nothing secret is held here)."""
        return self.model_dump()
