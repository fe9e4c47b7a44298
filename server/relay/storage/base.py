"""Device store interface (port) for the last known position of each device."""

from __future__ import annotations

from typing import Callable, Protocol, TypeVar, TYPE_CHECKING

if TYPE_CHECKING:
    from relay.core.models import DeviceRecord

T = TypeVar("T")


class DeviceStore(Protocol):
    """Port: keyed store of DeviceRecords, safe for concurrent per-device updates."""

    def get(self, device_id: str) -> DeviceRecord | None: ...

    def transact(
        self,
        device_id: str,
        fn: Callable[[DeviceRecord | None], tuple[DeviceRecord | None, T]],
    ) -> T: ...

    def snapshot(self) -> list[DeviceRecord]: ...

    def __len__(self) -> int: ...
