"""Environment source tests clarifying namespace coercion.

The scenarios cover prefix naming, nested assignment, update detection and
randomised inputs to prove the adapter continues to match the documented
environment rules.
"""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from lib_config_combiner import BadTypeError, EnvSource, SourceError
from lib_config_combiner.adapters.sources.env import assign_nested, default_env_prefix


def test_default_env_prefix() -> None:
    """Slug values should become upper snake-case prefixes used throughout docs."""

    assert default_env_prefix("lib-config-combiner") == "LIB_CONFIG_COMBINER"


def test_env_source_nested() -> None:
    """Coerce environment variables into nested values while ignoring out-of-scope keys."""

    environ = {
        "LIB_CONFIG_COMBINER_DB__HOST": "db.example.com",
        "LIB_CONFIG_COMBINER_DB__PORT": "5432",
        "LIB_CONFIG_COMBINER_FEATURE__ENABLED": "true",
        "OTHER": "ignored",
    }
    source = EnvSource("LIB_CONFIG_COMBINER", environ=environ)
    assert source.read_string("db.host") == "db.example.com"
    assert source.read_int("db.port") == 5432
    assert source.read_bool("feature.enabled") is True
    assert not source.contains("other")


def test_assign_nested_overwrites_scalar_raises() -> None:
    """Protect existing scalar values from being replaced by new nested assignments."""

    container: dict[str, object] = {"A": "value"}
    with pytest.raises(ValueError):
        assign_nested(container, "A__B", 1)


def test_conflicting_variables_raise_source_error() -> None:
    environ = {"DEMO_SERVICE": "flat", "DEMO_SERVICE__TIMEOUT": "5"}
    with pytest.raises(SourceError) as excinfo:
        EnvSource("DEMO", environ=environ, name="env")
    assert excinfo.value.source == "env"


def test_env_source_sees_changes_only_within_its_prefix() -> None:
    environ = {"DEMO_SERVICE__TIMEOUT": "5"}
    source = EnvSource("DEMO", environ=environ)

    environ["UNRELATED"] = "1"
    assert source.is_updatable() is False

    environ["DEMO_SERVICE__TIMEOUT"] = "10"
    assert source.is_updatable() is True
    assert source.read_int("service.timeout") == 5
    assert source.copy().read_int("service.timeout") == 10


SCALAR_VALUES = st.sampled_from(["0", "1", "true", "false", "3.5", "none", "debug"])
NAMESPACE_KEYS = st.sampled_from(["SERVICE__TIMEOUT", "SERVICE__ENDPOINT", "LOGGING__LEVEL"])


@given(st.dictionaries(NAMESPACE_KEYS, SCALAR_VALUES, max_size=3))
def test_env_source_handles_random_namespace(entries) -> None:
    """Randomised namespace inputs should map to consistent nested/coerced values."""

    prefix = "DEMO"
    environ = {f"{prefix}_" + key: value for key, value in entries.items()}
    environ["IGNORED"] = "1"
    source = EnvSource(prefix, environ=environ)

    for key, original in entries.items():
        dotted = key.lower().replace("__", ".")
        lowered = original.lower()
        assert source.contains(dotted)
        if lowered in {"true", "false"}:
            assert source.read_bool(dotted) is (lowered == "true")
        elif lowered == "none":
            with pytest.raises(BadTypeError):
                source.read_string(dotted)
        elif original.isdigit():
            assert source.read_long(dotted) == int(original)
        elif original == "3.5":
            assert source.read_double(dotted) == 3.5
        else:
            assert source.read_string(dotted) == original
