# stores.py
# Record and blob storage collaborators. Services receive these explicitly;
# nothing here is a module-level singleton.

from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Protocol
from urllib.parse import quote

import structlog

from utils import new_id

logger = structlog.get_logger("stores")

Row = Dict[str, Any]


class StoreError(Exception):
    """Raised by a store implementation when an operation cannot be applied."""


# ----------------------------
# Record store
# ----------------------------

class RecordStore(Protocol):
    def insert(self, table: str, row: Mapping[str, Any]) -> str: ...

    def insert_many(self, table: str, rows: List[Mapping[str, Any]]) -> List[str]: ...

    def get(self, table: str, row_id: str) -> Optional[Row]: ...

    def select(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Row]: ...

    def update(self, table: str, row_id: str, changes: Mapping[str, Any]) -> Row: ...

    def delete(self, table: str, row_id: str) -> None: ...

    def delete_where(self, table: str, where: Mapping[str, Any]) -> int: ...

    def transaction(self) -> Any: ...


class InMemoryRecordStore:
    """Dict-backed tables with equality filters, ordering, paging and transactions.

    Rows are copied on the way in and out so callers never share mutable
    state with the store. ``transaction()`` snapshots a table the first time the block writes to
    it and restores those snapshots if the block raises.
    """

    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Row]] = {}
        self._seq = 0
        self._lock = threading.RLock()
        # one frame per open transaction: table name -> rows before the first write, None if absent
        self._frames: List[Dict[str, Optional[Dict[str, Row]]]] = []

    def _table(self, name: str) -> Dict[str, Row]:
        return self._tables.setdefault(name, {})

    def _writable(self, name: str) -> Dict[str, Row]:
        for frame in self._frames:
            if name not in frame:
                frame[name] = copy.deepcopy(self._tables[name]) if name in self._tables else None
        return self._table(name)

    def insert(self, table: str, row: Mapping[str, Any]) -> str:
        with self._lock:
            data = copy.deepcopy(dict(row))
            row_id = str(data.get("id") or new_id())
            tbl = self._writable(table)
            if row_id in tbl:
                raise StoreError(f"duplicate id {row_id!r} in {table}")
            data["id"] = row_id
            # insertion sequence keeps ordering stable when sort keys tie
            self._seq += 1
            data["_seq"] = self._seq
            tbl[row_id] = data
            return row_id

    def insert_many(self, table: str, rows: List[Mapping[str, Any]]) -> List[str]:
        with self.transaction():
            return [self.insert(table, r) for r in rows]

    def get(self, table: str, row_id: str) -> Optional[Row]:
        with self._lock:
            row = self._table(table).get(row_id)
            return _public(row) if row is not None else None

    def select(
        self,
        table: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[Row]:
        with self._lock:
            rows = [r for r in self._table(table).values() if _matches(r, where)]
            rows.sort(key=lambda r: r["_seq"])
            if order_by:
                rows.sort(key=_sort_key(order_by), reverse=descending)
            elif descending:
                rows.reverse()
            if offset:
                rows = rows[offset:]
            if limit is not None:
                rows = rows[:limit]
            return [_public(r) for r in rows]

    def update(self, table: str, row_id: str, changes: Mapping[str, Any]) -> Row:
        with self._lock:
            tbl = self._writable(table)
            if row_id not in tbl:
                raise StoreError(f"no row {row_id!r} in {table}")
            data = dict(changes)
            data.pop("id", None)
            data.pop("_seq", None)
            tbl[row_id].update(copy.deepcopy(data))
            return _public(tbl[row_id])

    def delete(self, table: str, row_id: str) -> None:
        with self._lock:
            self._writable(table).pop(row_id, None)

    def delete_where(self, table: str, where: Mapping[str, Any]) -> int:
        with self._lock:
            tbl = self._writable(table)
            doomed = [rid for rid, r in tbl.items() if _matches(r, where)]
            for rid in doomed:
                del tbl[rid]
            return len(doomed)

    @contextmanager
    def transaction(self) -> Iterator["InMemoryRecordStore"]:
        with self._lock:
            frame: Dict[str, Optional[Dict[str, Row]]] = {}
            self._frames.append(frame)
            seq = self._seq
            try:
                yield self
            except BaseException:
                for name, saved in frame.items():
                    if saved is None:
                        self._tables.pop(name, None)
                    else:
                        self._tables[name] = saved
                self._seq = seq
                logger.info("store_transaction_rolled_back", tables=sorted(frame))
                raise
            finally:
                self._frames.pop()


def _public(row: Row) -> Row:
    data = copy.deepcopy(row)
    data.pop("_seq", None)
    return data


def _matches(row: Row, where: Optional[Mapping[str, Any]]) -> bool:
    if not where:
        return True
    return all(row.get(k) == v for k, v in where.items())


def _sort_key(field: str) -> Callable[[Row], Any]:
    # None sorts first, like NULLS FIRST on ascending order
    def key(row: Row) -> Any:
        value = row.get(field)
        return (value is not None, value if value is not None else 0)

    return key


# ----------------------------
# Blob store
# ----------------------------

class StorageBucket(str, Enum):
    manuscripts = "manuscripts"
    audio = "audio"
    covers = "covers"
    profiles = "profiles"


def clean_blob_path(path: str) -> str:
    """Normalize a bucket-relative path and refuse anything that escapes the bucket."""
    raw = (path or "").replace("\\", "/").strip("/")
    parts = PurePosixPath(raw).parts
    if not parts or any(p in ("..", ".") for p in parts):
        raise StoreError(f"invalid blob path {path!r}")
    return "/".join(parts)


class BlobStore(Protocol):
    def put(self, bucket: StorageBucket, path: str, data: bytes, content_type: Optional[str] = None) -> str: ...

    def get(self, bucket: StorageBucket, path: str) -> bytes: ...

    def delete(self, bucket: StorageBucket, path: str) -> None: ...

    def list(self, bucket: StorageBucket, prefix: str = "") -> List[Dict[str, Any]]: ...

    def public_url(self, bucket: StorageBucket, path: str) -> str: ...


class _BaseBlobStore:
    def __init__(self, public_base_url: str) -> None:
        self.public_base_url = public_base_url.rstrip("/")

    def public_url(self, bucket: StorageBucket, path: str) -> str:
        clean = clean_blob_path(path)
        return f"{self.public_base_url}/files/{StorageBucket(bucket).value}/{quote(clean)}"


class InMemoryBlobStore(_BaseBlobStore):
    def __init__(self, public_base_url: str = "http://localhost:8000") -> None:
        super().__init__(public_base_url)
        self._blobs: Dict[str, Dict[str, bytes]] = {b.value: {} for b in StorageBucket}

    def put(self, bucket: StorageBucket, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        clean = clean_blob_path(path)
        self._blobs[StorageBucket(bucket).value][clean] = bytes(data)
        return self.public_url(bucket, clean)

    def get(self, bucket: StorageBucket, path: str) -> bytes:
        clean = clean_blob_path(path)
        try:
            return self._blobs[StorageBucket(bucket).value][clean]
        except KeyError as exc:
            raise StoreError(f"no blob {clean!r} in {StorageBucket(bucket).value}") from exc

    def delete(self, bucket: StorageBucket, path: str) -> None:
        self._blobs[StorageBucket(bucket).value].pop(clean_blob_path(path), None)

    def list(self, bucket: StorageBucket, prefix: str = "") -> List[Dict[str, Any]]:
        items = []
        for name, data in sorted(self._blobs[StorageBucket(bucket).value].items()):
            if prefix and not name.startswith(prefix.strip("/")):
                continue
            items.append({"path": name, "size": len(data), "public_url": self.public_url(bucket, name)})
        return items


class LocalBlobStore(_BaseBlobStore):
    """Blobs on local disk under ``<root>/<bucket>/<path>``."""

    def __init__(self, root: str, public_base_url: str) -> None:
        super().__init__(public_base_url)
        # bucket directories are created by the first put
        self.root = Path(root)
        logger.info("blob_store_local", root=str(self.root.absolute()))

    def _file(self, bucket: StorageBucket, path: str) -> Path:
        return self.root / StorageBucket(bucket).value / clean_blob_path(path)

    def put(self, bucket: StorageBucket, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        target = self._file(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "wb") as f:
            f.write(data)
        return self.public_url(bucket, path)

    def get(self, bucket: StorageBucket, path: str) -> bytes:
        target = self._file(bucket, path)
        if not target.is_file():
            raise StoreError(f"no blob {clean_blob_path(path)!r} in {StorageBucket(bucket).value}")
        return target.read_bytes()

    def delete(self, bucket: StorageBucket, path: str) -> None:
        target = self._file(bucket, path)
        if target.is_file():
            target.unlink()

    def list(self, bucket: StorageBucket, prefix: str = "") -> List[Dict[str, Any]]:
        base = self.root / StorageBucket(bucket).value
        if not base.is_dir():
            return []
        items = []
        for f in sorted(base.rglob("*")):
            if not f.is_file():
                continue
            rel = f.relative_to(base).as_posix()
            if prefix and not rel.startswith(prefix.strip("/")):
                continue
            items.append({"path": rel, "size": f.stat().st_size, "public_url": self.public_url(bucket, rel)})
        return items
