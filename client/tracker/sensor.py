"""Location sample sources.

The runtime only needs an async iterator of samples. Real sensors are out of
reach of a Python process, so the one shipped source replays recorded
samples, either from memory or from a JSON-lines file such as:

    {"lat": 45.7640, "lon": 4.8357, "ts": 1700000000000, "accuracy": 5, "speed": 1.2}
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import replace
from pathlib import Path
from typing import AsyncIterator, Iterable, Protocol

from tracker.geo import Coordinate
from tracker.models import LocationSample


class SampleSource(Protocol):

    def stream(self) -> AsyncIterator[LocationSample]:
        ...


def _opt_float(value) -> float | None:
    if value is None:
        return None
    return float(value)


def sample_from_dict(data: dict, device_id: str) -> LocationSample:
    return LocationSample(
        device_id=str(data.get("userId") or device_id),
        coordinate=Coordinate(float(data["lat"]), float(data["lon"])),
        timestamp_ms=int(data["ts"]),
        accuracy_m=_opt_float(data.get("accuracy")),
        speed_mps=_opt_float(data.get("speed")),
    )


class ReplaySource:
    """Replays recorded samples.

    With ``speed`` set, waits between samples for the recorded gap divided by
    ``speed``. With ``restamp``, each emitted sample carries the wall-clock
    time of its emission instead of its recorded time.
    """

    def __init__(
        self,
        samples: Iterable[LocationSample],
        speed: float | None = None,
        restamp: bool = False,
    ) -> None:
        self._samples = list(samples)
        self._speed = speed
        self._restamp = restamp

    @classmethod
    def from_jsonl(cls, path: str | Path, device_id: str, **kwargs) -> ReplaySource:
        samples = []
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    samples.append(sample_from_dict(json.loads(line), device_id))
        return cls(samples, **kwargs)

    def __len__(self) -> int:
        return len(self._samples)

    async def stream(self) -> AsyncIterator[LocationSample]:
        previous_ts: int | None = None
        for sample in self._samples:
            if self._speed and previous_ts is not None:
                gap = max(0, sample.timestamp_ms - previous_ts) / 1000
                await asyncio.sleep(gap / self._speed)
            previous_ts = sample.timestamp_ms
            if self._restamp:
                sample = replace(sample, timestamp_ms=int(time.time() * 1000))
            yield sample
