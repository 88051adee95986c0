"""In-memory mapping source."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import Any, Callable, ClassVar, Union

from .base import TreeSource, as_supplier

MapPayload = Union[Mapping[str, Any], Callable[[], Mapping[str, Any]]]


class MapSource(TreeSource):
    """Serve values from a mapping, or from a callable returning the current mapping.

    The snapshot keeps a deep copy, so mutating the caller's mapping afterwards
    only becomes visible through ``copy()``. Since a mapping has no cheap hash,
    the fingerprint is that deep copy and ``is_updatable`` compares by equality.

    Examples
    --------
    >>> live = {"port": 8080}
    >>> source = MapSource(lambda: live, name="defaults")
    >>> source.read_int("port")
    8080
    >>> live["port"] = 9090
    >>> source.is_updatable(), source.read_int("port"), source.copy().read_int("port")
    (True, 8080, 9090)
    """

    kind: ClassVar[str] = "map"

    def __init__(self, data: MapPayload, *, name: str = "memory") -> None:
        if isinstance(data, Mapping):
            data = copy.deepcopy(dict(data))
        super().__init__(as_supplier(data), name=name)

    def _parse(self, raw: Any) -> Mapping[str, Any]:
        if not isinstance(raw, Mapping):
            return self._ensure_mapping(raw)
        return copy.deepcopy(dict(raw))

    def _fingerprint_of(self, raw: Any) -> Any:
        return copy.deepcopy(dict(raw)) if isinstance(raw, Mapping) else raw
