# SPDX-License-Identifier: Apache-2.0
"""
Vector Store SDK Tests

Unit tests for the record model, filter compilation, Milvus mapping and the
Milvus-backed store. A recording client stands in for a live Milvus server.
"""
