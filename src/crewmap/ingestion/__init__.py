"""Ingestion layer.

Helpers that turn raw provider/store payloads into the package's models.
"""

__all__: list[str] = []
