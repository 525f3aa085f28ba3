# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Dataset catalog – the in-process source of Dataset snapshots.

Datasets come from the CSV files under datasets_path or are uploaded
through the web API. The retrieval core only ever sees the immutable
Dataset objects handed out here.
"""
import re
import threading
from pathlib import Path
from typing import Optional

from .models import Dataset
from .readers import iter_dataset_files, read_dataset


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "dataset"


class DatasetCatalog:
    def __init__(self):
        self._datasets: dict[str, Dataset] = {}
        self._lock = threading.Lock()

    def load_dir(self, datasets_path: Path) -> int:
        """Load every CSV under datasets_path. Returns the number loaded."""
        if not datasets_path.exists():
            print(f"Warning: datasets path does not exist: {datasets_path}")
            return 0
        loaded = 0
        for path in iter_dataset_files(datasets_path):
            try:
                dataset = read_dataset(path, root=datasets_path)
            except Exception as e:
                print(f"Warning: could not read {path}: {e}")
                continue
            with self._lock:
                self._datasets[dataset.id] = dataset
            loaded += 1
        print(f"Catalog: {loaded} datasets loaded from {datasets_path}")
        return loaded

    def add(self, name: str, content: str, dataset_id: Optional[str] = None) -> Dataset:
        """Register a dataset. Replaces an existing one when dataset_id is given."""
        with self._lock:
            if dataset_id is None:
                base = _slugify(name)
                dataset_id = base
                n = 2
                while dataset_id in self._datasets:
                    dataset_id = f"{base}-{n}"
                    n += 1
            dataset = Dataset(id=dataset_id, name=name, content=content)
            self._datasets[dataset_id] = dataset
        return dataset

    def get(self, dataset_id: str) -> Optional[Dataset]:
        with self._lock:
            return self._datasets.get(dataset_id)

    def all(self) -> list[Dataset]:
        with self._lock:
            return list(self._datasets.values())

    def remove(self, dataset_id: str) -> bool:
        with self._lock:
            return self._datasets.pop(dataset_id, None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._datasets)
