# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""Exception types raised inside the retrieval core.

Pipeline boundaries never let these escape: indexing reports them as
IndexResult failures, retrieval stages turn them into misses.
"""


class RowscopeError(Exception):
    """Base class for rowscope errors."""


class EmbeddingDimensionError(RowscopeError):
    def __init__(self, expected: int, actual: int):
        super().__init__(f"embedding has {actual} dimensions, expected {expected}")
        self.expected = expected
        self.actual = actual


class DuplicateDocumentError(RowscopeError):
    def __init__(self, doc_id: str):
        super().__init__(f"document '{doc_id}' is already indexed")
        self.doc_id = doc_id
