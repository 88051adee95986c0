"""Multi-source caching combiner with change propagation.

Purpose
-------
Resolve typed values across an ordered list of sources (first source wins),
cache them, and on :meth:`Combiner.update` refresh every source, diff every
cached key against the refreshed snapshots, publish the result atomically and
notify observers of exactly what changed.

Contents
--------
* :class:`CombinerOptions` – naming, lock timeout and cache capacity.
* :class:`Combiner` – the resolution/update engine.
* :class:`ValueHandle` – consumer-facing reference to one key's current value.
* :class:`SubsetView` – accessor view that prefixes every key name.

Concurrency
-----------
All mutable state lives in one frozen :class:`_State` record ``(sources,
cache)`` guarded by a :class:`~.locking.ReadWriteLock` and replaced by
reference, never mutated in place. Readers therefore see either the old or the
new record, never a mix. Cache misses take the exclusive lock and re-check, so
concurrent first reads of one key perform a single source scan. ``update``
calls are serialised by a separate mutex; diffing runs under the shared lock
and only the publication takes the exclusive one. Observers are always invoked
outside both locks.
"""

from __future__ import annotations

import copy
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Mapping, Sequence, TypeVar

from ..domain.errors import ConfigError, InvalidArgument, MissingKeyError, SourceError
from ..domain.keys import Key, TypeTag, is_compatible
from ..observability import log_debug, log_error, log_info, make_event
from .locking import ReadWriteLock
from .observers import ALL, ObserverRegistry, Watched
from .ports import ALL_KEYS, Source

T = TypeVar("T")

Observer = Callable[[str], None]

_MISSING: Any = object()

# Immutable results can be handed out straight from the cache.
_SHARED_TAGS = frozenset({TypeTag.BOOL, TypeTag.INT, TypeTag.LONG, TypeTag.DOUBLE, TypeTag.STRING})


@dataclass(frozen=True, slots=True)
class CombinerOptions:
    """Tunables for a :class:`Combiner`.

    Attributes
    ----------
    name:
        Label used in log events and error messages.
    lock_timeout:
        Seconds to wait for the state lock before raising
        :class:`~lib_config_combiner.domain.errors.ConcurrencyError`; ``None``
        waits forever.
    max_cached_keys:
        Cache capacity. ``None`` keeps every resolved key for the lifetime of
        the combiner (configuration keys are few and long-lived). With a limit,
        the oldest resolved key is evicted first; it is re-resolved from the
        current sources on its next read and is not diffed by ``update`` while
        evicted.
    """

    name: str = "combiner"
    lock_timeout: float | None = None
    max_cached_keys: int | None = None

    def __post_init__(self) -> None:
        if self.max_cached_keys is not None and self.max_cached_keys < 1:
            raise InvalidArgument("max_cached_keys must be a positive integer or None")


@dataclass(frozen=True, slots=True)
class _State:
    sources: tuple[Source, ...]
    cache: Mapping[Key, Any] = field(default_factory=dict)


class _Accessors:
    """Typed accessor surface shared by :class:`Combiner` and :class:`SubsetView`."""

    def get(self, key: Key, must_exist: bool = False) -> ValueHandle[Any]:
        raise NotImplementedError

    def bool_(self, name: str) -> ValueHandle[bool]:
        return self.get(Key.bool_(name))

    def int_(self, name: str) -> ValueHandle[int]:
        return self.get(Key.int_(name))

    def long_(self, name: str) -> ValueHandle[int]:
        return self.get(Key.long_(name))

    def double(self, name: str) -> ValueHandle[float]:
        return self.get(Key.double(name))

    def string(self, name: str) -> ValueHandle[str]:
        return self.get(Key.string(name))

    def list_(self, name: str, element: type = object) -> ValueHandle[list[Any]]:
        return self.get(Key.list_(name, element))

    def map_(self, name: str, element: type = object) -> ValueHandle[dict[str, Any]]:
        return self.get(Key.map_(name, element))

    def set_(self, name: str, element: type = object) -> ValueHandle[set[Any]]:
        return self.get(Key.set_(name, element))

    def custom(self, name: str, target: type[T]) -> ValueHandle[T]:
        return self.get(Key.custom(name, target))


class Combiner(_Accessors):
    """Resolve, cache and update typed values across prioritised sources.

    Examples
    --------
    >>> from lib_config_combiner.adapters.sources.memory import MapSource
    >>> combiner = Combiner(MapSource({"x": 1}, name="a"), MapSource({"x": 2, "y": 9}, name="b"))
    >>> combiner.int_("x").v(), combiner.int_("y").v()
    (1, 9)
    >>> combiner.int_("z").v(42)
    42
    >>> combiner.update()
    False
    """

    def __init__(self, *sources: Source, options: CombinerOptions | None = None) -> None:
        self._options = options or CombinerOptions()
        _validate_sources(self._options.name, sources)
        self._lock = ReadWriteLock(timeout=self._options.lock_timeout, name=self._options.name)
        self._update_lock = threading.Lock()
        self._observers = ObserverRegistry()
        self._state = _State(tuple(sources), {})
        log_debug(
            "combiner_created",
            **make_event(None, None, {"combiner": self.name, "sources": [source.name for source in sources]}),
        )

    @property
    def name(self) -> str:
        return self._options.name

    @property
    def options(self) -> CombinerOptions:
        return self._options

    @property
    def sources(self) -> tuple[Source, ...]:
        """Current source snapshots in priority order."""

        with self._lock.read():
            return self._state.sources

    def cached_keys(self) -> list[Key]:
        """Keys resolved so far, oldest first."""

        with self._lock.read():
            return list(self._state.cache)

    def get(self, key: Key, must_exist: bool = False) -> ValueHandle[Any]:
        """Return a handle for *key* without touching any source.

        ``must_exist`` marks keys the application cannot do without: a failed
        resolution is logged as an error and ``v(default)`` raises
        ``MissingKeyError`` instead of falling back. Either way nothing is
        raised before the handle is dereferenced.
        """

        if not isinstance(key, Key):
            raise InvalidArgument(f"expected a Key, got {type(key).__name__}")
        return ValueHandle(self, key, must_exist)

    def value_or_raise(self, key: Key, *, must_exist: bool = True) -> Any:
        """Return the value for *key*, resolving it on first use, or raise ``MissingKeyError``."""

        value = self._resolve(key, must_exist)
        if value is _MISSING:
            raise MissingKeyError(key.name)
        return _detached(key, value)

    def value_or_default(self, key: Key, default: Any) -> Any:
        """Return the value for *key*, or *default* when no source defines it."""

        value = self._resolve(key, False)
        return default if value is _MISSING else _detached(key, value)

    def has(self, key: Key | str) -> bool:
        """Return whether *key* is cached or defined by any current source."""

        name = key.name if isinstance(key, Key) else key
        with self._lock.read():
            state = self._state
        if isinstance(key, Key) and _cached(state.cache, key) is not _MISSING:
            return True
        return any(source.contains(name) for source in state.sources)

    def subset(self, prefix: str) -> SubsetView:
        """Return a view resolving every name relative to *prefix*."""

        return SubsetView(self, prefix)

    def register(self, observer: Observer, *names: str, weak: bool = True) -> Combiner:
        """Notify *observer* when any of *names* changes; without names, after every committed update.

        Observers are held weakly unless ``weak=False``.
        """

        self._observers.register(observer, names if names else ALL, weak=weak)
        return self

    def deregister(self, observer: Observer, name: str | None = None) -> Combiner:
        self._observers.deregister(observer, name)
        return self

    def update(self) -> bool:
        """Refresh every source and propagate changes of cached keys.

        Returns ``True`` when at least one cached key changed or disappeared;
        the new sources and cache are then published together and observers
        are notified. Returns ``False`` and leaves everything untouched
        otherwise.
        """

        with self._update_lock:
            with self._lock.read():
                baseline = self._state
            if not self._any_updatable(baseline.sources):
                log_debug("update_skipped", **make_event(None, None, {"combiner": self.name, "reason": "up_to_date"}))
                return False

            refreshed = self._refresh(baseline.sources)
            with self._lock.read():
                baseline = self._state
                new_cache, updated = _diff(baseline.cache, refreshed)
            if not updated:
                log_debug("update_skipped", **make_event(None, None, {"combiner": self.name, "reason": "unchanged"}))
                return False

            with self._lock.write():
                current = self._state
                if current is not baseline:
                    # Keys resolved from the old sources while we were diffing.
                    late = {key: value for key, value in current.cache.items() if key not in baseline.cache}
                    late_cache, late_updated = _diff(late, refreshed)
                    new_cache.update(late_cache)
                    updated |= late_updated
                    new_cache = self._bounded(new_cache)
                self._state = _State(refreshed, new_cache)
                observers = self._observers.snapshot()

        log_info(
            "update_committed",
            **make_event(None, None, {"combiner": self.name, "updated": sorted(updated), "cached": len(new_cache)}),
        )
        self._notify(updated, observers)
        return True

    def __repr__(self) -> str:
        return f"Combiner(name={self.name!r}, sources={[source.name for source in self._state.sources]})"

    def _resolve(self, key: Key, must_exist: bool) -> Any:
        with self._lock.read():
            value = _cached(self._state.cache, key)
        if value is not _MISSING:
            return value

        with self._lock.write():
            state = self._state
            value = _cached(state.cache, key)
            if value is not _MISSING:
                return value
            source, value = _scan(state.sources, key)
            if source is not None:
                self._state = _State(state.sources, self._insert(state.cache, key, value))

        if source is None:
            event = make_event(None, key.name, {"combiner": self.name, "type": key.describe()})
            (log_error if must_exist else log_debug)("key_missing", **event)
            return _MISSING
        log_debug("key_resolved", **make_event(source.name, key.name, {"combiner": self.name, "type": key.describe()}))
        return value

    def _insert(self, cache: Mapping[Key, Any], key: Key, value: Any) -> dict[Key, Any]:
        fresh = dict(cache)
        fresh[key] = value
        return self._bounded(fresh)

    def _bounded(self, fresh: dict[Key, Any]) -> dict[Key, Any]:
        """Evict the oldest entries of *fresh* beyond ``max_cached_keys``."""

        limit = self._options.max_cached_keys
        while limit is not None and len(fresh) > limit:
            evicted = next(iter(fresh))
            del fresh[evicted]
            log_debug("key_evicted", **make_event(None, evicted.name, {"combiner": self.name}))
        return fresh

    def _any_updatable(self, sources: Sequence[Source]) -> bool:
        errors: list[SourceError] = []
        for source in sources:
            try:
                if source.is_updatable():
                    return True
            except SourceError as exc:
                log_error("source_check_failed", **make_event(source.name, None, {"error": str(exc)}))
                errors.append(exc)
        if errors and len(errors) == len(sources):
            raise errors[0]
        return False

    def _refresh(self, sources: Sequence[Source]) -> tuple[Source, ...]:
        refreshed: list[Source] = []
        errors: list[SourceError] = []
        for source in sources:
            try:
                refreshed.append(source.copy())
            except SourceError as exc:
                log_error("source_refresh_failed", **make_event(source.name, None, {"error": str(exc)}))
                errors.append(exc)
                refreshed.append(source)
        if errors and len(errors) == len(sources):
            raise errors[0]
        return tuple(refreshed)

    def _notify(self, updated: set[str], observers: list[tuple[Observer, Watched]]) -> None:
        failures: list[Exception] = []
        ordered = sorted(updated)
        for observer, names in observers:
            if names is ALL:
                continue
            for name in ordered:
                if name in names:  # type: ignore[operator]
                    _call(observer, name, failures)
        for observer, names in observers:
            if names is ALL:
                _call(observer, ALL_KEYS, failures)
        if failures:
            raise failures[0]


class ValueHandle(Generic[T]):
    """Long-lived reference to "the value of *key* as last resolved by the combiner".

    Handles carry no state beyond identity; any two handles for the same key
    and combiner are interchangeable.
    """

    __slots__ = ("_combiner", "_key", "_must_exist", "__weakref__")

    def __init__(self, combiner: Combiner, key: Key, must_exist: bool = False) -> None:
        self._combiner = combiner
        self._key = key
        self._must_exist = must_exist

    @property
    def key(self) -> Key:
        return self._key

    @property
    def name(self) -> str:
        return self._key.name

    def v(self, default: Any = _MISSING) -> T:
        """Return the current value, or *default* when absent.

        Raises ``MissingKeyError`` when the key is absent and no default was
        given, or when the handle was requested with ``must_exist``.
        """

        if default is _MISSING or self._must_exist:
            return self._combiner.value_or_raise(self._key, must_exist=self._must_exist)
        return self._combiner.value_or_default(self._key, default)

    def exists(self) -> bool:
        return self._combiner.has(self._key)

    def register(self, observer: Observer, *, weak: bool = True) -> ValueHandle[T]:
        self._combiner.register(observer, self._key.name, weak=weak)
        return self

    def register_and_call(self, observer: Observer, *, weak: bool = True) -> ValueHandle[T]:
        """Register *observer* and invoke it once right away so it can seed its state."""

        self.register(observer, weak=weak)
        observer(self._key.name)
        return self

    def deregister(self, observer: Observer) -> ValueHandle[T]:
        self._combiner.deregister(observer, self._key.name)
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValueHandle):
            return NotImplemented
        return self._combiner is other._combiner and self._key == other._key

    def __hash__(self) -> int:
        return hash((id(self._combiner), self._key))

    def __repr__(self) -> str:
        try:
            shown = repr(self.v())
        except ConfigError:
            shown = "?"
        return f"ValueHandle({self._key.name}:{self._key.describe()}={shown})"


class SubsetView(_Accessors):
    """Resolve names relative to *prefix* on an underlying combiner.

    Examples
    --------
    >>> from lib_config_combiner.adapters.sources.memory import MapSource
    >>> db = Combiner(MapSource({"db": {"port": 5432}})).subset("db")
    >>> db.int_("port").v()
    5432
    """

    def __init__(self, combiner: Combiner, prefix: str) -> None:
        if not prefix or prefix.startswith("."):
            raise InvalidArgument(f"subset prefix must be non-empty and must not start with a dot: {prefix!r}")
        self._combiner = combiner
        self._prefix = prefix if prefix.endswith(".") else prefix + "."

    @property
    def prefix(self) -> str:
        return self._prefix

    def get(self, key: Key, must_exist: bool = False) -> ValueHandle[Any]:
        return self._combiner.get(key.renamed(self._prefix + key.name), must_exist)

    def has(self, name: str) -> bool:
        return self._combiner.has(self._prefix + name)

    def subset(self, prefix: str) -> SubsetView:
        if not prefix or prefix.startswith("."):
            raise InvalidArgument(f"subset prefix must be non-empty and must not start with a dot: {prefix!r}")
        return SubsetView(self._combiner, self._prefix + prefix)

    def register(self, observer: Observer, *names: str, weak: bool = True) -> SubsetView:
        if names:
            self._combiner.register(observer, *(self._prefix + name for name in names), weak=weak)
        else:
            self._combiner.register(observer, weak=weak)
        return self

    def deregister(self, observer: Observer, name: str | None = None) -> SubsetView:
        self._combiner.deregister(observer, None if name is None else self._prefix + name)
        return self


def _validate_sources(name: str, sources: Iterable[Source]) -> None:
    names = [getattr(source, "name", None) for source in sources]
    if not names:
        raise InvalidArgument(f"{name}: no source given")
    duplicates = sorted({each for each in names if names.count(each) > 1}, key=str)
    if duplicates:
        raise InvalidArgument(f"{name}: duplicate source names: {', '.join(map(str, duplicates))}")


def _cached(cache: Mapping[Key, Any], key: Key) -> Any:
    """Return the cached value satisfying *key* (exact first, then compatible)."""

    if key in cache:
        return cache[key]
    for stored, value in cache.items():
        if is_compatible(key, stored):
            return value
    return _MISSING


def _scan(sources: Sequence[Source], key: Key) -> tuple[Source | None, Any]:
    for source in sources:
        if source.contains(key.name):
            return source, source.read(key)
    return None, _MISSING


def _diff(cache: Mapping[Key, Any], sources: Sequence[Source]) -> tuple[dict[Key, Any], set[str]]:
    """Re-resolve every cached key against *sources*.

    Returns the new cache (disappeared keys dropped) and the names whose value
    changed or disappeared.
    """

    fresh: dict[Key, Any] = {}
    updated: set[str] = set()
    for key, old in cache.items():
        source, value = _scan(sources, key)
        if source is None:
            updated.add(key.name)
            continue
        fresh[key] = value
        if not _same(value, old):
            updated.add(key.name)
    return fresh, updated


def _same(new: Any, old: Any) -> bool:
    """Value equality where NaN equals NaN, so a NaN setting is not a change on every update."""

    if isinstance(new, float) and isinstance(old, float):
        return new == old or (math.isnan(new) and math.isnan(old))
    if isinstance(new, (list, tuple)) and isinstance(old, (list, tuple)):
        return type(new) is type(old) and len(new) == len(old) and all(map(_same, new, old))
    if isinstance(new, Mapping) and isinstance(old, Mapping):
        return new.keys() == old.keys() and all(_same(new[name], old[name]) for name in new)
    return bool(new == old)


def _detached(key: Key, value: Any) -> Any:
    """Return a private copy of container and structured values so callers cannot edit the cache."""

    if key.declared_type in _SHARED_TAGS:
        return value
    return copy.deepcopy(value)


def _call(observer: Observer, name: str, failures: list[Exception]) -> None:
    try:
        observer(name)
    except Exception as exc:  # noqa: BLE001 - every observer runs, the first failure is re-raised
        log_error("observer_failed", **make_event(None, name, {"observer": repr(observer), "error": str(exc)}))
        failures.append(exc)
