# Rowscope – Grounding context retrieval over tabular datasets
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""Rowscope: hybrid (embedding + BM25) row retrieval for chat grounding."""

__version__ = "0.3.0"
