# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
CSV readers – turn raw dataset text into ordered row mappings and load
datasets from a directory of .csv files.
"""
import csv
import io
from pathlib import Path
from typing import Iterator, Optional

from .models import Dataset

SUPPORTED_EXTENSIONS: set[str] = {".csv"}


def parse_csv(text: str) -> list[dict[str, str]]:
    """Parse CSV text (header row first) into a list of row dicts.

    Column order follows the header. Short rows are padded with "",
    surplus fields are dropped and blank lines are skipped.
    """
    if not text:
        return []
    if text.startswith("\ufeff"):
        text = text[1:]

    reader = csv.reader(io.StringIO(text))
    header: Optional[list[str]] = None
    rows: list[dict[str, str]] = []
    for record in reader:
        if not record:
            continue
        if header is None:
            header = [h.strip() for h in record]
            continue
        row: dict[str, str] = {}
        for i, column in enumerate(header):
            row[column] = record[i] if i < len(record) else ""
        rows.append(row)
    return rows


def iter_dataset_files(datasets_path: Path) -> Iterator[Path]:
    """Yield every supported dataset file under datasets_path, sorted."""
    for ext in sorted(SUPPORTED_EXTENSIONS):
        yield from sorted(datasets_path.rglob(f"*{ext}"))


def read_dataset(path: Path, root: Optional[Path] = None) -> Dataset:
    """Load one CSV file as a Dataset.

    The id is the path relative to root without its suffix, so files in
    different subdirectories never collide.
    """
    rel = path.relative_to(root) if root is not None else Path(path.name)
    dataset_id = rel.with_suffix("").as_posix()
    content = path.read_text(encoding="utf-8", errors="ignore")
    return Dataset(id=dataset_id, name=path.stem, content=content)
