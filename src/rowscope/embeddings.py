# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Text -> fixed-length vector.

The sentence-transformers model is loaded lazily on first use. If the
load fails (no network, missing weights, wrong dimension) the provider
switches to degraded mode for the rest of the process and every vector
comes from the deterministic hash embedding instead. The hash embedding
is a pure function of the text, so tests can pin exact vectors without
any model on disk.
"""
import math
import re
import threading
import time
from typing import Callable, Optional

from .errors import EmbeddingDimensionError

DEFAULT_MODEL = "all-MiniLM-L6-v2"
EMBEDDING_DIM = 384
EMBED_BATCH_SIZE = 5
HASH_WINDOW = 10

_WHITESPACE = re.compile(r"\s+")


def _load_sentence_transformer(model_name: str):
    from sentence_transformers import SentenceTransformer
    return SentenceTransformer(model_name, device="cpu")


def _to_int32(value: int) -> int:
    return ((value + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def token_hash(token: str) -> int:
    """31-multiplier rolling hash over UTF-16 code units, signed 32-bit."""
    h = 0
    units = token.encode("utf-16-le")
    for i in range(0, len(units), 2):
        code = units[i] | (units[i + 1] << 8)
        h = _to_int32(h * 31 + code)
    return h


def hash_embedding(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Deterministic bag-of-tokens embedding used when no model is available.

    Each token writes sin(hash + i) * 0.1 into a window of up to 10 slots
    starting at |hash| mod (dim - token_count). Later tokens overwrite
    earlier ones where windows overlap.
    """
    tokens = _WHITESPACE.split(text.lower())
    vector = [0.0] * dim
    count = len(tokens)
    window = min(count, HASH_WINDOW)
    modulus = max(dim - count, 1)
    for token in tokens:
        h = token_hash(token)
        start = abs(h) % modulus
        for i in range(window):
            if start + i < dim:
                vector[start + i] = math.sin(h + i) * 0.1
    return vector


class EmbeddingProvider:
    """Lazily-initialized embedding model with a hash fallback.

    initialize() is single-flight: concurrent first callers block on one
    lock and all observe the outcome of a single load attempt.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        dim: int = EMBEDDING_DIM,
        batch_size: int = EMBED_BATCH_SIZE,
        batch_pause: float = 0.01,
        loader: Optional[Callable[[str], object]] = None,
    ):
        self.model_name = model_name
        self.dim = dim
        self.batch_size = max(1, batch_size)
        self.batch_pause = batch_pause
        self._loader = loader or _load_sentence_transformer
        self._model = None
        self._ready = False
        self._degraded = False
        self._init_error: Optional[str] = None
        self._init_lock = threading.Lock()
        self.load_attempts = 0

    @classmethod
    def from_config(cls, config, loader=None) -> "EmbeddingProvider":
        return cls(
            model_name=config.embedding_model,
            dim=config.embedding_dim,
            batch_size=config.embed_batch_size,
            batch_pause=config.embed_batch_pause,
            loader=loader,
        )

    # ── Lifecycle ────────────────────────────────────────

    def initialize(self) -> bool:
        """Load the model once. Returns True in full mode, False if degraded."""
        if self._ready:
            return not self._degraded
        with self._init_lock:
            if self._ready:
                return not self._degraded
            self.load_attempts += 1
            try:
                model = self._loader(self.model_name)
                self._check_dimension(model)
                self._model = model
                print(f"Embedding model '{self.model_name}' ready ({self.dim}d)")
            except Exception as e:
                self._model = None
                self._degraded = True
                self._init_error = str(e)
                print(
                    f"Warning: embedding model '{self.model_name}' unavailable ({e}), "
                    f"using hash embeddings"
                )
            self._ready = True
        return not self._degraded

    def _check_dimension(self, model) -> None:
        get_dim = getattr(model, "get_sentence_embedding_dimension", None)
        actual = get_dim() if callable(get_dim) else None
        if actual is not None and actual != self.dim:
            raise EmbeddingDimensionError(self.dim, actual)

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def is_degraded(self) -> bool:
        return self._degraded

    @property
    def init_error(self) -> Optional[str]:
        return self._init_error

    # ── Embedding ────────────────────────────────────────

    def fallback_embedding(self, text: str) -> list[float]:
        return hash_embedding(text, self.dim)

    def embed(self, text: str) -> list[float]:
        self.initialize()
        if self._degraded or self._model is None:
            return self.fallback_embedding(text)
        try:
            vector = self._model.encode(
                text, normalize_embeddings=True, show_progress_bar=False,
            )
            return self._as_list(vector)
        except Exception as e:
            print(f"Warning: embedding failed ({e}), using hash embedding")
            return self.fallback_embedding(text)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in groups of batch_size, pausing between groups.

        Output order matches input order.
        """
        self.initialize()
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            group = texts[start : start + self.batch_size]
            vectors.extend(self._embed_group(group))
            if start + self.batch_size < len(texts) and self.batch_pause > 0:
                time.sleep(self.batch_pause)
        return vectors

    def _embed_group(self, group: list[str]) -> list[list[float]]:
        if self._degraded or self._model is None:
            return [self.fallback_embedding(t) for t in group]
        try:
            encoded = self._model.encode(
                group, normalize_embeddings=True, show_progress_bar=False,
            )
            return [self._as_list(v) for v in encoded]
        except Exception as e:
            print(f"Warning: batch embedding failed ({e}), embedding one by one")
            return [self.embed(t) for t in group]

    @staticmethod
    def _as_list(vector) -> list[float]:
        if hasattr(vector, "tolist"):
            vector = vector.tolist()
        return [float(x) for x in vector]

    @property
    def stats(self) -> dict:
        return {
            "model": self.model_name,
            "dimension": self.dim,
            "ready": self._ready,
            "degraded": self._degraded,
            "init_error": self._init_error,
        }
