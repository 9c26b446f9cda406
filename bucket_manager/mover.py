"""Move and rename for files and folder prefixes.

The bucket has no rename primitive and no directories, so a move copies every
object under the source prefix to the destination prefix and then deletes the
originals whose copy succeeded. The sequence is not atomic: while a move runs,
old and new keys coexist, and two moves over overlapping prefixes race.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from bucket_manager.errors import InvalidArgument, NotFoundError, PartialFailure
from bucket_manager.notify import Event, NullNotifier
from bucket_manager.paths import is_folder

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 8


@dataclass(frozen=True)
class MoveResult:
    old_key: str
    new_key: str
    moved_count: int

    def to_json(self) -> dict:
        return {"oldKey": self.old_key, "newKey": self.new_key, "movedCount": self.moved_count}


def validate_move(old_key, new_key):
    if not old_key or not new_key:
        raise InvalidArgument("Both oldKey and newKey are required.")
    if old_key == new_key:
        raise InvalidArgument("oldKey and newKey must differ.")
    if is_folder(old_key) != is_folder(new_key):
        raise InvalidArgument("A folder can only be moved to a folder key, a file to a file key.")
    if is_folder(old_key) and new_key.startswith(old_key):
        raise InvalidArgument(f"Cannot move {old_key} into itself ({new_key}).")


class Mover:
    def __init__(self, store, notifier=None, workers: int = DEFAULT_WORKERS) -> None:
        self.store = store
        self.notifier = notifier or NullNotifier()
        self.workers = max(1, workers)

    def move(self, old_key: str, new_key: str) -> MoveResult:
        validate_move(old_key, new_key)
        if is_folder(old_key):
            result = self._move_folder(old_key, new_key)
        else:
            result = self._move_file(old_key, new_key)
        logger.info("Move old=%s new=%s count=%s", old_key, new_key, result.moved_count)
        self._announce(result)
        return result

    def _announce(self, result: MoveResult) -> None:
        try:
            self.notifier.publish(Event("moved", result.to_json()))
        except Exception:
            logger.exception("Publishing move event failed old=%s", result.old_key)

    def _move_file(self, old_key: str, new_key: str) -> MoveResult:
        if self.store.head(old_key) is None:
            raise NotFoundError(f"Object not found: {old_key}")
        try:
            copied = self.store.copy(old_key, new_key)
        except Exception as exc:
            logger.warning("Copy failed key=%s new=%s: %s", old_key, new_key, exc)
            raise PartialFailure([], [old_key], f"Copy of {old_key} failed: {exc}") from exc
        if not copied:
            raise NotFoundError(f"Object not found: {old_key}")
        self.store.delete([old_key])
        return MoveResult(old_key, new_key, 1)

    def _enumerate(self, old_prefix: str) -> list[str]:
        keys = [obj.key for obj in self.store.list(prefix=old_prefix)]
        if not keys and self.store.head(old_prefix) is not None:
            keys = [old_prefix]
        return keys

    def _copy_one(self, src_key: str, dst_key: str) -> bool:
        try:
            return bool(self.store.copy(src_key, dst_key))
        except Exception as exc:
            logger.warning("Copy failed key=%s new=%s: %s", src_key, dst_key, exc)
            logger.debug("Copy failure detail", exc_info=True)
            return False

    def _move_folder(self, old_prefix: str, new_prefix: str) -> MoveResult:
        keys = self._enumerate(old_prefix)
        if not keys:
            return MoveResult(old_prefix, new_prefix, 0)

        targets = {key: new_prefix + key[len(old_prefix):] for key in keys}
        with ThreadPoolExecutor(max_workers=min(self.workers, len(keys))) as executor:
            futures = {key: executor.submit(self._copy_one, key, dst) for key, dst in targets.items()}
            outcomes = {key: future.result() for key, future in futures.items()}

        succeeded = [key for key in keys if outcomes[key]]
        failed = [key for key in keys if not outcomes[key]]
        if succeeded:
            self.store.delete(succeeded)
        if failed:
            logger.error(
                "Move partially failed old=%s new=%s moved=%s failed=%s",
                old_prefix, new_prefix, len(succeeded), len(failed),
            )
            raise PartialFailure(succeeded, failed)
        return MoveResult(old_prefix, new_prefix, len(succeeded))
