"""In-memory object store for tests and local experiments.

Behaves like a strongly consistent bucket and records every call in ``ops`` so
callers can assert which store operations a request performed.
"""

from __future__ import annotations

import datetime
import hashlib
import threading
from dataclasses import dataclass

from bucket_manager.store import ObjectInfo, StoredObject, StoreError

MUTATIONS = {"put", "delete", "copy"}


@dataclass
class StoreOp:
    name: str
    args: tuple[object, ...]


class InMemoryStore:
    def __init__(self, objects: dict[str, bytes] | None = None) -> None:
        self._objects: dict[str, StoredObject] = {}
        self._lock = threading.Lock()
        self.ops: list[StoreOp] = []
        # key -> exception raised when that key is read or copied
        self.fail_keys: dict[str, Exception] = {}
        for key, body in (objects or {}).items():
            self._store(key, body, None, None)

    def _record(self, name: str, *args: object) -> None:
        with self._lock:
            self.ops.append(StoreOp(name, args))

    def _store(self, key, body, content_type, metadata) -> None:
        with self._lock:
            self._objects[key] = StoredObject(
                key=key,
                body=bytes(body),
                content_type=content_type,
                metadata=dict(metadata or {}),
                etag=hashlib.md5(bytes(body)).hexdigest(),
                uploaded=datetime.datetime.now(datetime.timezone.utc),
            )

    def _check_failure(self, key: str) -> None:
        exc = self.fail_keys.get(key)
        if exc is not None:
            raise exc

    @staticmethod
    def _info(obj: StoredObject) -> ObjectInfo:
        return ObjectInfo(
            key=obj.key,
            size=obj.size,
            uploaded=obj.uploaded,
            etag=obj.etag,
            content_type=obj.content_type,
        )

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)

    def op_names(self) -> list[str]:
        return [op.name for op in self.ops]

    def mutations(self) -> list[StoreOp]:
        return [op for op in self.ops if op.name in MUTATIONS]

    def list(self, prefix: str = "", limit: int | None = None) -> list[ObjectInfo]:
        self._record("list", prefix, limit)
        with self._lock:
            found = [self._info(o) for k, o in sorted(self._objects.items()) if k.startswith(prefix or "")]
        return found if limit is None else found[:limit]

    def head(self, key: str) -> ObjectInfo | None:
        self._record("head", key)
        with self._lock:
            obj = self._objects.get(key)
        return self._info(obj) if obj else None

    def get(self, key: str) -> StoredObject | None:
        self._record("get", key)
        self._check_failure(key)
        with self._lock:
            return self._objects.get(key)

    def open(self, key: str):
        self._record("open", key)
        self._check_failure(key)
        with self._lock:
            obj = self._objects.get(key)
        if obj is None:
            return None

        def chunks():
            yield obj.body

        return self._info(obj), chunks()

    def put(self, key: str, body: bytes, content_type: str | None = None, metadata: dict[str, str] | None = None) -> None:
        self._record("put", key)
        self._store(key, body, content_type, metadata)

    def delete(self, keys: list[str]) -> None:
        self._record("delete", tuple(keys))
        with self._lock:
            for key in keys:
                self._objects.pop(key, None)

    def copy(self, src_key: str, dst_key: str) -> bool:
        self._record("copy", src_key, dst_key)
        self._check_failure(src_key)
        with self._lock:
            src = self._objects.get(src_key)
        if src is None:
            return False
        self._store(dst_key, src.body, src.content_type, src.metadata)
        return True


def failing(message: str = "injected failure") -> StoreError:
    return StoreError(message)
