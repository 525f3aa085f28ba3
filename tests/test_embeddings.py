"""Tests for the EmbeddingProvider and the hash fallback."""
import math
import threading
import time

import numpy as np
import pytest

from conftest import ConstantModel, failing_loader
from rowscope.embeddings import EmbeddingProvider, hash_embedding, token_hash


class TestTokenHash:
    def test_matches_31_multiplier_hash(self):
        assert token_hash("a") == 97
        assert token_hash("ab") == 97 * 31 + 98
        assert token_hash("hello") == 99162322

    def test_wraps_to_signed_32_bit(self):
        assert token_hash("polygenelubricants") == -2147483648

    def test_empty_token(self):
        assert token_hash("") == 0

    def test_hashes_utf16_code_units(self):
        # U+1F600 is a surrogate pair in UTF-16
        assert token_hash("\U0001F600") == 0xD83D * 31 + 0xDE00


class TestHashEmbedding:
    def test_dimension(self):
        assert len(hash_embedding("some text here")) == 384

    def test_golden_single_token(self):
        vec = hash_embedding("a")
        assert vec[97] == math.sin(97) * 0.1
        assert sum(1 for v in vec if v != 0.0) == 1

    def test_deterministic(self):
        text = "date: 2023-01-01, open: 150.25, high: 152.30"
        assert hash_embedding(text) == hash_embedding(text)

    def test_case_insensitive(self):
        assert hash_embedding("High Price") == hash_embedding("high price")

    def test_window_capped_at_ten(self):
        text = " ".join(f"w{i}" for i in range(40))
        vec = hash_embedding(text)
        # 40 tokens, each writing at most 10 slots
        assert 0 < sum(1 for v in vec if v != 0.0) <= 400

    def test_more_tokens_than_dimensions(self):
        text = " ".join(f"t{i}" for i in range(500))
        vec = hash_embedding(text)
        assert len(vec) == 384
        assert all(math.isfinite(v) for v in vec)

    def test_empty_text_is_zero_vector(self):
        assert not any(hash_embedding(""))


class TestInitialize:
    def test_degraded_when_loader_fails(self):
        provider = EmbeddingProvider(loader=failing_loader)
        assert provider.initialize() is False
        assert provider.is_ready
        assert provider.is_degraded
        assert "no weights" in provider.init_error

    def test_full_mode(self, model_provider):
        assert model_provider.initialize() is True
        assert not model_provider.is_degraded

    def test_dimension_mismatch_degrades(self):
        provider = EmbeddingProvider(loader=lambda name: ConstantModel(dim=768))
        assert provider.initialize() is False
        assert "768" in provider.init_error

    def test_idempotent(self):
        calls = []

        def loader(name):
            calls.append(name)
            return ConstantModel()

        provider = EmbeddingProvider(loader=loader)
        provider.initialize()
        provider.initialize()
        provider.embed("x")
        assert calls == ["all-MiniLM-L6-v2"]

    def test_single_flight_under_concurrency(self):
        calls = []

        def slow_loader(name):
            calls.append(name)
            time.sleep(0.05)
            return ConstantModel()

        provider = EmbeddingProvider(loader=slow_loader)
        outcomes = []
        threads = [
            threading.Thread(target=lambda: outcomes.append(provider.initialize()))
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(calls) == 1
        assert provider.load_attempts == 1
        assert outcomes == [True] * 8


class TestEmbed:
    def test_degraded_uses_hash_embedding(self, degraded_provider):
        assert degraded_provider.embed("close price") == hash_embedding("close price")

    def test_model_output_is_list_of_floats(self, model_provider):
        vec = model_provider.embed("close price")
        assert isinstance(vec, list)
        assert len(vec) == 384
        assert vec[0] == 1.0

    def test_runtime_failure_falls_back(self):
        class Broken(ConstantModel):
            def encode(self, sentences, **kwargs):
                raise RuntimeError("cuda exploded")

        provider = EmbeddingProvider(loader=lambda name: Broken())
        assert provider.embed("abc def") == hash_embedding("abc def")
        assert not provider.is_degraded


class TestEmbedBatch:
    def test_preserves_order(self, degraded_provider):
        texts = [f"row {i} value {i * 7}" for i in range(12)]
        assert degraded_provider.embed_batch(texts) == [hash_embedding(t) for t in texts]

    def test_groups_of_five(self, constant_model, model_provider):
        out = model_provider.embed_batch([f"t{i}" for i in range(12)])
        assert len(out) == 12
        assert [len(c) for c in constant_model.calls] == [5, 5, 2]

    def test_empty(self, degraded_provider):
        assert degraded_provider.embed_batch([]) == []

    def test_pauses_between_groups(self, monkeypatch):
        sleeps = []
        monkeypatch.setattr("rowscope.embeddings.time.sleep", sleeps.append)
        provider = EmbeddingProvider(loader=failing_loader, batch_pause=0.01)
        provider.embed_batch(["a"] * 11)
        assert sleeps == [0.01, 0.01]

    def test_stats(self, degraded_provider):
        degraded_provider.initialize()
        s = degraded_provider.stats
        assert s["dimension"] == 384
        assert s["degraded"] is True
