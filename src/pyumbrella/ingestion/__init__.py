"""Ingestion layer.

Adapters that turn raw bus payloads into typed device events. Import
:mod:`pyumbrella.ingestion.parse` directly; the package itself stays
empty so models can depend on :mod:`pyumbrella.ingestion.normalize`.
"""

__all__: list[str] = []
