"""Observer registry mapping callbacks to the key names they watch.

Purpose
-------
Track who wants to hear about which keys without keeping observers alive: by
default an observer is held through a weak reference (``weakref.WeakMethod``
for bound methods) and its entry disappears once the consumer drops its last
reference. ``weak=False`` pins the observer until it is deregistered, which is
what inline lambdas need.

Contents
--------
* :data:`ALL` – marker meaning "every key".
* :class:`ObserverRegistry` – thread-safe registration and snapshots.
"""

from __future__ import annotations

import threading
import weakref
from collections import deque
from typing import Callable, Final, Iterable, Union

Observer = Callable[[str], None]


class _AllKeys:
    __slots__ = ()

    def __repr__(self) -> str:
        return "ALL"


ALL: Final[_AllKeys] = _AllKeys()
"""Marker registered in place of a name set for observers that watch every key."""

Watched = Union[frozenset, _AllKeys]


class _Entry:
    __slots__ = ("ref", "names")

    def __init__(self, ref: Callable[[], Observer | None], names: set[str] | _AllKeys) -> None:
        self.ref = ref
        self.names = names


class ObserverRegistry:
    """Map observers to the names they watch, or to :data:`ALL`.

    Examples
    --------
    >>> registry = ObserverRegistry()
    >>> def on_change(key):
    ...     pass
    >>> registry.register(on_change, ["db.port"])
    >>> registry.register(on_change, ["db.host"])
    >>> [sorted(names) for _, names in registry.snapshot()]
    [['db.host', 'db.port']]
    >>> registry.deregister(on_change)
    >>> len(registry)
    0
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[int, _Entry] = {}
        # Filled by weakref callbacks, which may run inside the garbage collector
        # while ``_lock`` is held; drained under the lock by ``_purge``.
        self._dead: deque[tuple[int, object]] = deque()

    def register(self, observer: Observer, names: Iterable[str] | _AllKeys = ALL, *, weak: bool = True) -> None:
        """Add *observer* for *names* (merged with names it already watches)."""

        ident = _identity(observer)
        with self._lock:
            self._purge()
            entry = self._entries.get(ident)
            if entry is None or entry.ref() is None:
                entry = _Entry(self._reference(observer, ident, weak), set() if names is not ALL else ALL)
                self._entries[ident] = entry
            elif not weak and isinstance(entry.ref, (weakref.ref, weakref.WeakMethod)):
                entry.ref = _strong(observer)
            if names is ALL or entry.names is ALL:
                entry.names = ALL
            else:
                entry.names.update(names)  # type: ignore[union-attr]

    def deregister(self, observer: Observer, name: str | None = None) -> None:
        """Remove *observer* entirely, or only its interest in *name*; no-op if absent."""

        ident = _identity(observer)
        with self._lock:
            self._purge()
            entry = self._entries.get(ident)
            if entry is None:
                return
            if name is None or entry.names is ALL:
                del self._entries[ident]
                return
            entry.names.discard(name)  # type: ignore[union-attr]
            if not entry.names:
                del self._entries[ident]

    def snapshot(self) -> list[tuple[Observer, Watched]]:
        """Return live observers with a frozen copy of what each one watches."""

        with self._lock:
            self._purge()
            entries = list(self._entries.values())
        live: list[tuple[Observer, Watched]] = []
        for entry in entries:
            observer = entry.ref()
            if observer is None:
                continue
            names = entry.names
            live.append((observer, names if names is ALL else frozenset(names)))  # type: ignore[arg-type]
        return live

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return sum(1 for entry in self._entries.values() if entry.ref() is not None)

    def _reference(self, observer: Observer, ident: int, weak: bool) -> Callable[[], Observer | None]:
        if not weak:
            return _strong(observer)

        def _drop(_ref: object, registry: weakref.ref = weakref.ref(self)) -> None:
            owner = registry()
            if owner is not None:
                owner._dead.append((ident, _ref))

        try:
            if hasattr(observer, "__self__") and hasattr(observer, "__func__"):
                return weakref.WeakMethod(observer, _drop)  # type: ignore[arg-type]
            return weakref.ref(observer, _drop)
        except TypeError:
            # Builtins and some callables cannot be weakly referenced.
            return _strong(observer)

    def _purge(self) -> None:
        while self._dead:
            ident, ref = self._dead.popleft()
            entry = self._entries.get(ident)
            if entry is not None and entry.ref is ref:
                del self._entries[ident]


def _identity(observer: Observer) -> int:
    """Bound methods are recreated on every attribute access, so key them by (object, function)."""

    if hasattr(observer, "__self__") and hasattr(observer, "__func__"):
        return hash((id(observer.__self__), id(observer.__func__)))  # type: ignore[attr-defined]
    return id(observer)


def _strong(observer: Observer) -> Callable[[], Observer]:
    return lambda: observer
