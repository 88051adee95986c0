"""Thread-safety tests for resolution and update."""

from __future__ import annotations

import threading
from typing import Any

from lib_config_combiner import Combiner, Key, MapSource


class ScanCounter(MapSource):
    """Source counting ``contains`` calls, i.e. how often it is scanned."""

    def __init__(self, data: dict[str, Any], *, name: str) -> None:
        super().__init__(data, name=name)
        self.scans = 0
        self._scan_lock = threading.Lock()

    def contains(self, name: str) -> bool:
        with self._scan_lock:
            self.scans += 1
        return super().contains(name)


def test_concurrent_first_reads_scan_sources_once() -> None:
    workers = 16
    first = ScanCounter({}, name="first")
    second = ScanCounter({"x": [1, 2, 3]}, name="second")
    combiner = Combiner(first, second)
    barrier = threading.Barrier(workers)
    results: list[Any] = [None] * workers

    def _read(index: int) -> None:
        barrier.wait()
        results[index] = combiner.list_("x", int).v()

    threads = [threading.Thread(target=_read, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert (first.scans, second.scans) == (1, 1)
    assert all(result == [1, 2, 3] for result in results)


def test_readers_never_observe_a_partial_update(map_source) -> None:
    source, payload = map_source({"a": 0, "b": 0})
    combiner = Combiner(source)
    a, b = combiner.int_("a"), combiner.int_("b")
    a.v(), b.v()
    stop = threading.Event()
    torn: list[tuple[int, int]] = []

    def _reader() -> None:
        while not stop.is_set():
            sources = combiner.sources
            pair = (sources[0].read(Key.int_("a")), sources[0].read(Key.int_("b")))
            if pair[0] != pair[1]:
                torn.append(pair)

    readers = [threading.Thread(target=_reader) for _ in range(4)]
    for thread in readers:
        thread.start()
    try:
        for step in range(1, 50):
            payload.value = {"a": step, "b": step}
            assert combiner.update() is True
            assert (a.v(), b.v()) == (step, step)
    finally:
        stop.set()
        for thread in readers:
            thread.join()
    assert torn == []
