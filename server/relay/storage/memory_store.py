"""In-process sharded implementation of DeviceStore."""

from __future__ import annotations

import threading
import zlib
from typing import Callable, TypeVar, TYPE_CHECKING

if TYPE_CHECKING:
    from relay.core.models import DeviceRecord

T = TypeVar("T")


class _Shard:
    __slots__ = ("lock", "records")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.records: dict[str, DeviceRecord] = {}


class ShardedDeviceStore:
    """DeviceStore backed by N lock-guarded dicts.

    A device always maps to the same shard, so updates for one device are
    serialised while devices on other shards proceed without contention.
    Records live for the lifetime of the process.
    """

    def __init__(self, shards: int = 16) -> None:
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._shards = [_Shard() for _ in range(shards)]

    def _shard(self, device_id: str) -> _Shard:
        return self._shards[zlib.crc32(device_id.encode("utf-8")) % len(self._shards)]

    def get(self, device_id: str) -> DeviceRecord | None:
        shard = self._shard(device_id)
        with shard.lock:
            return shard.records.get(device_id)

    def transact(
        self,
        device_id: str,
        fn: Callable[[DeviceRecord | None], tuple[DeviceRecord | None, T]],
    ) -> T:
        """Atomically read, decide and (optionally) replace one device's record.

        ``fn`` receives the current record (or None) and returns
        ``(new_record, result)``. A ``None`` new_record leaves the store
        unchanged. ``fn`` runs under the shard lock and must not block.
        """
        shard = self._shard(device_id)
        with shard.lock:
            new_record, result = fn(shard.records.get(device_id))
            if new_record is not None:
                shard.records[device_id] = new_record
            return result

    def snapshot(self) -> list[DeviceRecord]:
        records: list[DeviceRecord] = []
        for shard in self._shards:
            with shard.lock:
                records.extend(shard.records.values())
        return records

    def __len__(self) -> int:
        total = 0
        for shard in self._shards:
            with shard.lock:
                total += len(shard.records)
        return total
