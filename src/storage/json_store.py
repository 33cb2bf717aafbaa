"""
JSON file key-value store.

One file per key under ``~/.lingo/store/`` by default. File names are the
percent-encoded key, so any key string maps to a distinct, safe name.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

DEFAULT_STORE_DIR = Path.home() / ".lingo" / "store"


class JsonFileKeyValueStore:
    """Persists each value as ``{quoted key}.json``."""

    def __init__(self, store_dir: Path | None = None):
        self.store_dir = store_dir or DEFAULT_STORE_DIR
        self.store_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.store_dir / f"{quote(key, safe='')}.json"

    def _read(self, key: str) -> Any | None:
        filepath = self._path(key)
        if not filepath.exists():
            return None
        with open(filepath, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, key: str, value: Any) -> None:
        filepath = self._path(key)
        tmp = filepath.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(value, f, ensure_ascii=False, indent=2)
        tmp.replace(filepath)

    def _remove(self, key: str) -> None:
        filepath = self._path(key)
        if filepath.exists():
            filepath.unlink()

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    def keys(self) -> list[str]:
        return sorted(unquote(p.name[: -len(".json")]) for p in self.store_dir.glob("*.json"))

