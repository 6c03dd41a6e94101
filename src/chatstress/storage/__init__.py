from __future__ import annotations

from pathlib import Path

from chatstress.storage.duckdb_store import Storage


def default_storage() -> Storage:
    return Storage(Path(".chatstress/chatstress.duckdb"))


__all__ = ["Storage", "default_storage"]
