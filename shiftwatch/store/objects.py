"""Key-value object stores holding JSON documents."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

from shiftwatch.common.errors import StoreError
from shiftwatch.common.fs import read_json, write_json

DEFAULT_PAGE_SIZE = 500


@dataclass(frozen=True)
class ListPage:
    keys: list[str]
    cursor: str | None


def _page(sorted_keys: list[str], prefix: str, cursor: str | None, page_size: int) -> ListPage:
    matching = [key for key in sorted_keys if key.startswith(prefix) and (cursor is None or key > cursor)]
    keys = matching[:page_size]
    next_cursor = keys[-1] if len(matching) > page_size else None
    return ListPage(keys=keys, cursor=next_cursor)


class ObjectStore:
    """Contract for the persisted store: get / put / list / delete by string key."""

    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def put(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def list(self, prefix: str, cursor: str | None = None, page_size: int = DEFAULT_PAGE_SIZE) -> ListPage:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def iter_keys(self, prefix: str) -> Iterator[str]:
        cursor = None
        while True:
            page = self.list(prefix, cursor=cursor)
            yield from page.keys
            if page.cursor is None:
                return
            cursor = page.cursor


class MemoryObjectStore(ObjectStore):
    def __init__(self) -> None:
        self.objects: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self.objects.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def put(self, key: str, value: Any) -> None:
        # Stored serialized so callers can never alias persisted state.
        self.objects[key] = json.dumps(value, sort_keys=True)

    def list(self, prefix: str, cursor: str | None = None, page_size: int = DEFAULT_PAGE_SIZE) -> ListPage:
        return _page(sorted(self.objects), prefix, cursor, page_size)

    def delete(self, key: str) -> None:
        self.objects.pop(key, None)


class FileObjectStore(ObjectStore):
    """One JSON file per key below ``root``; keys use ``/`` as separator."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, key: str) -> Path:
        parts = [part for part in key.split("/") if part not in ("", ".", "..")]
        if not parts:
            raise StoreError(f"Invalid store key: {key!r}")
        return self.root.joinpath(*parts)

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return read_json(path)
        except (OSError, ValueError) as exc:
            raise StoreError(f"Failed to read {key}") from exc

    def put(self, key: str, value: Any) -> None:
        try:
            write_json(self._path(key), value)
        except OSError as exc:
            raise StoreError(f"Failed to write {key}") from exc

    def list(self, prefix: str, cursor: str | None = None, page_size: int = DEFAULT_PAGE_SIZE) -> ListPage:
        if not self.root.exists():
            return ListPage(keys=[], cursor=None)
        try:
            keys = sorted(path.relative_to(self.root).as_posix() for path in self.root.rglob("*") if path.is_file())
        except OSError as exc:
            raise StoreError(f"Failed to list {prefix}") from exc
        return _page(keys, prefix, cursor, page_size)

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StoreError(f"Failed to delete {key}") from exc
