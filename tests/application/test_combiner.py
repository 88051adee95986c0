"""Combiner resolution tests: priority, laziness, caching and views."""

from __future__ import annotations

import logging
import numbers
from typing import Any

import pytest

from lib_config_combiner import (
    BadTypeError,
    Combiner,
    CombinerOptions,
    ConstantValue,
    InvalidArgument,
    Key,
    MapSource,
    MissingKeyError,
)


class CountingSource(MapSource):
    """In-memory source recording how often it is read."""

    def __init__(self, data: dict[str, Any], *, name: str = "counting") -> None:
        super().__init__(data, name=name)
        self.reads: list[str] = []

    def read(self, key: Key) -> Any:
        self.reads.append(key.name)
        return super().read(key)


@pytest.fixture()
def combiner() -> Combiner:
    return Combiner(MapSource({"x": 1}, name="a"), MapSource({"x": 2, "y": 9}, name="b"))


def test_first_source_wins(combiner: Combiner) -> None:
    assert combiner.int_("x").v() == 1
    assert combiner.int_("y").v() == 9


def test_priority_is_independent_of_call_order() -> None:
    combiner = Combiner(MapSource({"x": 1}, name="a"), MapSource({"x": 2}, name="b"))
    assert combiner.long_("x").v() == 1
    assert combiner.int_("x").v() == 1


def test_absent_key_is_deferred_until_dereferenced(combiner: Combiner) -> None:
    handle = combiner.int_("z")
    assert handle.exists() is False
    assert handle.v(42) == 42
    with pytest.raises(MissingKeyError) as excinfo:
        handle.v()
    assert excinfo.value.key == "z"


def test_bad_type_is_raised_even_with_default(combiner: Combiner) -> None:
    handle = combiner.string("x")
    with pytest.raises(BadTypeError):
        handle.v()
    with pytest.raises(BadTypeError):
        handle.v("fallback")


def test_handles_are_interchangeable(combiner: Combiner) -> None:
    assert combiner.int_("x") == combiner.int_("x")
    assert hash(combiner.int_("x")) == hash(combiner.get(Key.int_("x")))
    assert combiner.int_("x") != combiner.long_("x")
    assert repr(combiner.int_("x")) == "ValueHandle(x:int=1)"
    assert repr(combiner.int_("z")) == "ValueHandle(z:int=?)"


def test_get_requires_a_key(combiner: Combiner) -> None:
    with pytest.raises(InvalidArgument):
        combiner.get("x")  # type: ignore[arg-type]


def test_values_are_stable_until_update(map_source) -> None:
    source, payload = map_source({"x": 1, "y": 2})
    combiner = Combiner(source)
    assert combiner.int_("x").v() == 1

    payload.value = {"x": 10, "y": 20}
    assert combiner.int_("x").v() == 1
    assert combiner.int_("y").v() == 2


def test_values_are_cached_after_first_resolution() -> None:
    source = CountingSource({"x": 1})
    combiner = Combiner(source)
    for _ in range(3):
        assert combiner.int_("x").v() == 1
    assert source.reads == ["x"]
    assert combiner.cached_keys() == [Key.int_("x")]


def test_compatible_cached_entry_answers_wider_requests() -> None:
    source = CountingSource({"ports": [80, 443]})
    combiner = Combiner(source)
    assert combiner.list_("ports", int).v() == [80, 443]
    assert combiner.list_("ports", numbers.Number).v() == [80, 443]
    assert source.reads == ["ports"]

    with pytest.raises(BadTypeError):
        combiner.list_("ports", str).v()
    assert source.reads == ["ports", "ports"]


def test_has_checks_cache_and_sources(combiner: Combiner) -> None:
    assert combiner.has("y")
    assert combiner.has(Key.string("y"))
    assert not combiner.has("z")
    combiner.int_("x").v()
    assert combiner.has(Key.int_("x"))


def test_sources_must_be_present_and_uniquely_named() -> None:
    with pytest.raises(InvalidArgument, match="no source"):
        Combiner()
    with pytest.raises(InvalidArgument, match="duplicate source names: a"):
        Combiner(MapSource({}, name="a"), MapSource({}, name="a"))


def test_cache_evicts_oldest_key_beyond_capacity() -> None:
    source = CountingSource({"a": 1, "b": 2, "c": 3})
    combiner = Combiner(source, options=CombinerOptions(max_cached_keys=2))
    for name in ("a", "b", "c"):
        combiner.int_(name).v()
    assert combiner.cached_keys() == [Key.int_("b"), Key.int_("c")]

    assert combiner.int_("a").v() == 1
    assert source.reads == ["a", "b", "c", "a"]


def test_invalid_capacity_is_rejected() -> None:
    with pytest.raises(InvalidArgument):
        CombinerOptions(max_cached_keys=0)


def test_containers_and_custom_types() -> None:
    combiner = Combiner(
        MapSource({"hosts": ["a", "b", "a"], "limits": {"read": 1}, "motd": ["hi ", "there"], "ratio": 0.25})
    )
    assert combiner.set_("hosts", str).v() == {"a", "b"}
    assert combiner.list_("hosts").v() == ["a", "b", "a"]
    assert combiner.map_("limits", int).v() == {"read": 1}
    assert combiner.string("motd").v() == "hi there"
    assert combiner.double("ratio").v() == 0.25
    assert combiner.custom("limits", dict[str, int]).v() == {"read": 1}


def test_subset_prefixes_names() -> None:
    combiner = Combiner(MapSource({"db": {"port": 5432, "replica": {"port": 5433}}}))
    db = combiner.subset("db")
    assert db.prefix == "db."
    assert db.int_("port").v() == 5432
    assert db.int_("port") == combiner.int_("db.port")
    assert db.subset("replica").int_("port").v() == 5433
    assert db.has("port")
    assert not db.has("host")


@pytest.mark.parametrize("prefix", ["", ".db"])
def test_subset_rejects_bad_prefixes(combiner: Combiner, prefix: str) -> None:
    with pytest.raises(InvalidArgument):
        combiner.subset(prefix)


def test_must_exist_logs_missing_key_as_error(combiner: Combiner, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="lib_config_combiner")
    with pytest.raises(MissingKeyError):
        combiner.get(Key.int_("z"), must_exist=True).v()
    with pytest.raises(MissingKeyError):
        combiner.int_("w").v()

    missing = [record for record in caplog.records if record.getMessage() == "key_missing"]
    assert [(record.levelno, record.context["key"]) for record in missing] == [
        (logging.ERROR, "z"),
        (logging.DEBUG, "w"),
    ]


def test_must_exist_handle_ignores_default(combiner: Combiner) -> None:
    handle = combiner.get(Key.int_("z"), must_exist=True)
    with pytest.raises(MissingKeyError):
        handle.v(0)
    assert combiner.get(Key.int_("x"), must_exist=True).v(0) == 1


def test_resolution_is_logged_with_source(combiner: Combiner, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="lib_config_combiner")
    combiner.int_("y").v()
    [record] = [record for record in caplog.records if record.getMessage() == "key_resolved"]
    assert record.context["source"] == "b"
    assert record.context["type"] == "int"


def test_constant_handles_stand_in_for_combiner_handles(combiner: Combiner) -> None:
    handles = [combiner.int_("x"), ConstantValue.of(1, name="x")]
    assert [handle.v() for handle in handles] == [1, 1]


def test_returned_containers_do_not_leak_into_the_cache() -> None:
    combiner = Combiner(MapSource({"x": [1, 2, 3], "limits": {"read": 1}, "tags": ["a"]}))
    combiner.list_("x", int).v().append(99)
    combiner.map_("limits", int).v()["write"] = 2
    combiner.set_("tags", str).v().add("b")

    assert combiner.list_("x", int).v() == [1, 2, 3]
    assert combiner.map_("limits", int).v() == {"read": 1}
    assert combiner.set_("tags", str).v() == {"a"}
    assert combiner.update() is False


def test_abstract_element_type_resolves_on_a_fresh_cache() -> None:
    combiner = Combiner(MapSource({"ports": [80, 443], "flags": [True]}))
    assert combiner.list_("ports", numbers.Number).v() == [80, 443]
    with pytest.raises(BadTypeError):
        combiner.list_("flags", numbers.Number).v()


@pytest.mark.parametrize("order", [("bool", "int"), ("int", "bool")])
def test_boolean_lists_never_answer_integer_requests(order: tuple[str, str]) -> None:
    combiner = Combiner(MapSource({"flags": [True, False]}))
    for element in order:
        if element == "bool":
            assert combiner.list_("flags", bool).v() == [True, False]
        else:
            with pytest.raises(BadTypeError):
                combiner.list_("flags", int).v()


class _HookedLock:
    """Lock wrapper running *before_write* once, just before the first write acquisition."""

    def __init__(self, lock: Any, before_write: Any) -> None:
        self._lock = lock
        self._before = before_write

    def read(self) -> Any:
        return self._lock.read()

    def write(self) -> Any:
        hook, self._before = self._before, None
        if hook is not None:
            hook()
        return self._lock.write()


def test_keys_resolved_during_update_respect_capacity(map_source) -> None:
    source, payload = map_source({"a": 1, "b": 2, "c": 3})
    combiner = Combiner(source, options=CombinerOptions(max_cached_keys=2))
    combiner.int_("a").v()
    combiner.int_("b").v()

    payload.value = {"a": 10, "b": 2, "c": 3}
    combiner._lock = _HookedLock(combiner._lock, lambda: combiner.int_("c").v())
    assert combiner.update() is True

    assert len(combiner.cached_keys()) == 2
    assert Key.int_("c") in combiner.cached_keys()
    assert combiner.int_("c").v() == 3
    assert combiner.int_("a").v() == 10
