import numpy as np
import pytest

from rowscope.config import Config
from rowscope.dataset_indexer import DatasetIndexer
from rowscope.embeddings import EmbeddingProvider
from rowscope.health import HealthTracker
from rowscope.hybrid_index import HybridIndex
from rowscope.models import Dataset
from rowscope.retrieval import ContextRetriever

STOCK_CSV = (
    "date,open,high,low,close,volume\n"
    "2023-01-01,150.25,152.30,149.80,151.20,1250000\n"
    "2023-01-02,151.20,153.50,150.90,152.80,1350000\n"
    "2023-01-03,152.80,154.20,151.60,153.75,1420000\n"
    "2023-01-04,153.75,155.80,153.00,154.90,1580000\n"
    "2023-01-05,154.90,156.40,154.50,155.60,1210000\n"
    "2023-01-06,155.60,157.20,154.80,156.85,1680000\n"
    "2023-01-07,156.85,158.50,156.00,157.95,1750000\n"
)


def failing_loader(model_name):
    raise RuntimeError(f"no weights for {model_name}")


class ConstantModel:
    """Stand-in for SentenceTransformer: every text maps to the same unit vector."""

    def __init__(self, dim=384):
        self.dim = dim
        self.calls: list = []
        vec = np.zeros(dim, dtype=np.float32)
        vec[0] = 1.0
        self._vec = vec

    def get_sentence_embedding_dimension(self):
        return self.dim

    def encode(self, sentences, normalize_embeddings=True, show_progress_bar=False):
        self.calls.append(sentences)
        if isinstance(sentences, str):
            return self._vec.copy()
        return np.stack([self._vec.copy() for _ in sentences])


@pytest.fixture
def stock_dataset():
    return Dataset(id="stocks", name="Stock Prices", content=STOCK_CSV)


@pytest.fixture
def config(tmp_path):
    return Config(
        datasets_path=str(tmp_path / "datasets"),
        embed_batch_pause=0.0,
    )


@pytest.fixture
def degraded_provider():
    return EmbeddingProvider(batch_pause=0.0, loader=failing_loader)


@pytest.fixture
def constant_model():
    return ConstantModel()


@pytest.fixture
def model_provider(constant_model):
    return EmbeddingProvider(batch_pause=0.0, loader=lambda name: constant_model)


@pytest.fixture
def health():
    return HealthTracker()


@pytest.fixture
def indexer(degraded_provider):
    return DatasetIndexer(HybridIndex(degraded_provider))


@pytest.fixture
def retriever(indexer, health):
    return ContextRetriever(indexer, health=health)


@pytest.fixture
def model_indexer(model_provider):
    return DatasetIndexer(HybridIndex(model_provider))


@pytest.fixture
def model_retriever(model_indexer, health):
    return ContextRetriever(model_indexer, health=health)
