"""Shared fixtures for the combiner test-suite.

Sources in these tests pull from plain dictionaries or lists the test mutates,
which is how a file-watch callback would see a file change on disk.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import pytest

from lib_config_combiner import JSONSource, MapSource


class Live:
    """Mutable payload handed to a source through a pull callable."""

    def __init__(self, value: Any) -> None:
        self.value = value

    def __call__(self) -> Any:
        return self.value


@pytest.fixture()
def live() -> Callable[[Any], Live]:
    """Build a :class:`Live` payload; assign ``.value`` to simulate an edited backend."""

    return Live


@pytest.fixture()
def map_source(live) -> Callable[..., tuple[MapSource, Live]]:
    """Return ``(source, payload)`` for an in-memory source backed by a live dict."""

    def _make(data: dict[str, Any], name: str = "memory") -> tuple[MapSource, Live]:
        payload = live(data)
        return MapSource(payload, name=name), payload

    return _make


@pytest.fixture()
def json_source(live) -> Callable[..., tuple[JSONSource, Live]]:
    """Return ``(source, payload)`` for a JSON source whose text can be replaced."""

    def _make(data: dict[str, Any], name: str = "json") -> tuple[JSONSource, Live]:
        payload = live(json.dumps(data))
        return JSONSource(payload, name=name), payload

    return _make
