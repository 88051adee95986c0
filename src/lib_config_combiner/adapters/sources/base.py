"""Shared implementation for sources backed by a parsed tree of native values.

Purpose
-------
Every backend shipped with the library (map, JSON, YAML, TOML, environment)
ends up with the same shape: a pull callable producing raw data, a parser
turning it into nested mappings, and a cheap fingerprint of the raw data.
:class:`TreeSource` implements the :class:`~lib_config_combiner.application.ports.Source`
contract on top of that shape so subclasses only describe parsing.

Contents
--------
* :class:`TreeSource` – base class with typed reads, ``contains``,
  ``is_updatable`` and ``copy``.
* :func:`as_supplier` – wrap a literal payload in a pull callable.

System Role
-----------
Snapshots are immutable: ``copy`` re-pulls and re-parses into a new instance,
the receiver keeps serving its original tree.
"""

from __future__ import annotations

import copy as _copy
from collections.abc import Mapping
from typing import Any, Callable, ClassVar

from ...domain.coercion import coerce
from ...domain.errors import InvalidArgument, MissingKeyError, SourceError
from ...domain.keys import Key
from ...observability import log_debug, log_error, make_event

_ABSENT: Any = object()


def as_supplier(payload: Any) -> Callable[[], Any]:
    """Return *payload* unchanged when callable, otherwise a callable returning it."""

    if callable(payload):
        return payload
    return lambda: payload


class TreeSource:
    """Source whose snapshot is a nested mapping of native values.

    Subclasses set :attr:`kind` and implement :meth:`_parse`; they may
    override :meth:`_fingerprint_of` when hashing the raw payload is not
    possible.
    """

    kind: ClassVar[str] = "tree"

    def __init__(self, supplier: Callable[[], Any], *, name: str) -> None:
        if not name:
            raise InvalidArgument("source name must not be empty")
        self._name = name
        self._supplier = supplier
        self._fingerprint: Any = None
        self._root: Mapping[str, Any] = {}
        self._load()

    @property
    def name(self) -> str:
        return self._name

    def read(self, key: Key) -> Any:
        """Read *key* from this snapshot applying the shared coercion contract."""

        node = self._node(key.name)
        if node is _ABSENT:
            raise MissingKeyError(key.name, self._name)
        return coerce(key, node)

    def read_bool(self, name: str) -> bool:
        return self.read(Key.bool_(name))

    def read_int(self, name: str) -> int:
        return self.read(Key.int_(name))

    def read_long(self, name: str) -> int:
        return self.read(Key.long_(name))

    def read_double(self, name: str) -> float:
        return self.read(Key.double(name))

    def read_string(self, name: str) -> str:
        return self.read(Key.string(name))

    def read_list(self, name: str, element: type) -> list[Any]:
        return self.read(Key.list_(name, element))

    def read_map(self, name: str, element: type) -> dict[str, Any]:
        return self.read(Key.map_(name, element))

    def read_set(self, name: str, element: type) -> set[Any]:
        return self.read(Key.set_(name, element))

    def read_custom(self, name: str, target: type) -> Any:
        return self.read(Key.custom(name, target))

    def contains(self, name: str) -> bool:
        if not isinstance(name, str) or not name:
            return False
        return self._lookup(name) is not _ABSENT

    def is_updatable(self) -> bool:
        """Compare the fingerprint of freshly pulled data with the snapshot's one."""

        raw = self._pull()
        if raw is None:
            return False
        return self._fingerprint_of(raw) != self._fingerprint

    def copy(self) -> TreeSource:
        """Return a new snapshot built from freshly pulled data."""

        clone = _copy.copy(self)
        clone._load()
        return clone

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, keys={len(self._root)})"

    def _parse(self, raw: Any) -> Mapping[str, Any]:
        raise NotImplementedError

    def _fingerprint_of(self, raw: Any) -> Any:
        return hash(raw)

    def _load(self) -> None:
        raw = self._pull()
        if raw is None:
            raise SourceError(self._name, "supplier returned no data")
        root = self._ensure_mapping(self._parse(raw))
        self._fingerprint = self._fingerprint_of(raw)
        self._root = root
        log_debug("source_loaded", **make_event(self._name, None, {"kind": self.kind, "keys": len(root)}))

    def _pull(self) -> Any:
        return self._supplier()

    def _invalid(self, exc: Exception) -> SourceError:
        """Log and build the ``SourceError`` raised for an unparsable payload."""

        log_error("source_invalid", **make_event(self._name, None, {"kind": self.kind, "error": str(exc)}))
        return SourceError(self._name, f"invalid {self.kind} payload: {exc}")

    def _ensure_mapping(self, data: object) -> Mapping[str, Any]:
        if not isinstance(data, Mapping):
            log_error("source_invalid", **make_event(self._name, None, {"kind": self.kind, "error": "not a mapping"}))
            raise SourceError(self._name, f"{self.kind} payload did not produce a mapping")
        return data

    def _node(self, name: str) -> Any:
        if not isinstance(name, str) or not name:
            raise InvalidArgument(f"key name must be a non-empty string, got {name!r}")
        return self._lookup(name)

    def _lookup(self, name: str) -> Any:
        """Resolve *name* as an exact top-level key first, then as a dotted path."""

        if name in self._root:
            return self._root[name]
        current: Any = self._root
        for part in name.split("."):
            if not isinstance(current, Mapping) or part not in current:
                return _ABSENT
            current = current[part]
        return current
