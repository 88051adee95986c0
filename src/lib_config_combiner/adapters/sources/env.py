"""Environment variable source.

Purpose
-------
Translate process environment variables into a nested source so deployments
can override file-based configuration by placing an :class:`EnvSource` first
in the combiner's priority list.

Key behaviours
--------------
* Enforces a prefix (``default_env_prefix``) so only relevant keys are captured.
* Supports ``__`` as a nesting delimiter (``FOO__BAR`` → ``{"foo": {"bar": ...}}``).
* Performs light type coercion for common scalar types (bools, ints, floats,
  ``null``/``none``).
* The fingerprint is the filtered variable set, so unrelated environment
  changes never trigger an update.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any, ClassVar

from ...domain.errors import SourceError
from ...observability import log_debug
from .base import TreeSource


def default_env_prefix(slug: str) -> str:
    """Return the canonical environment prefix for *slug*.

    Examples
    --------
    >>> default_env_prefix('lib-config-combiner')
    'LIB_CONFIG_COMBINER'
    """

    return slug.replace("-", "_").upper()


class EnvSource(TreeSource):
    """Serve variables that belong to the configuration namespace *prefix*.

    Examples
    --------
    >>> env = {'DEMO_SERVICE__ENABLED': 'true', 'DEMO_SERVICE__RETRIES': '3'}
    >>> source = EnvSource('DEMO', environ=env)
    >>> source.read_int('service.retries'), source.read_bool('service.enabled')
    (3, True)
    """

    kind: ClassVar[str] = "env"

    def __init__(self, prefix: str, *, environ: Mapping[str, str] | None = None, name: str = "env") -> None:
        self._prefix = f"{prefix}_" if prefix and not prefix.endswith("_") else prefix
        self._environ = os.environ if environ is None else environ
        super().__init__(self._collect, name=name)

    def _collect(self) -> dict[str, str]:
        prefix = self._prefix
        return {
            key[len(prefix) :]: value
            for key, value in self._environ.items()
            if (not prefix or key.startswith(prefix)) and key[len(prefix) :]
        }

    def _parse(self, raw: Any) -> Mapping[str, Any]:
        collected: dict[str, object] = {}
        for key, value in sorted(raw.items()):
            try:
                assign_nested(collected, key, _coerce(value))
            except ValueError as exc:
                raise SourceError(self.name, str(exc)) from exc
        log_debug("env_variables_loaded", source=self.name, key=None, keys=sorted(collected.keys()))
        return collected

    def _fingerprint_of(self, raw: Any) -> Any:
        return dict(raw)


def assign_nested(target: dict[str, object], key: str, value: object) -> None:
    """Assign ``value`` inside ``target`` using ``__`` as a nesting delimiter.

    Examples
    --------
    >>> data: dict[str, object] = {}
    >>> assign_nested(data, 'SERVICE__TIMEOUT', 5)
    >>> data
    {'service': {'timeout': 5}}
    """

    parts = key.split("__")
    cursor = target
    for part in parts[:-1]:
        cursor = _ensure_child_mapping(cursor, part)
    final_key = _resolve_key(cursor, parts[-1])
    if isinstance(cursor.get(final_key), dict):
        raise ValueError(f"Cannot override mapping with scalar for key {key}")
    cursor[final_key] = value


def _resolve_key(mapping: dict[str, object], key: str) -> str:
    """Return an existing key that matches ``key`` (case-insensitive) or a new lowercase key."""

    lower = key.lower()
    for existing in mapping.keys():
        if existing.lower() == lower:
            return existing
    return lower


def _ensure_child_mapping(mapping: dict[str, object], key: str) -> dict[str, object]:
    """Ensure ``mapping[key]`` is a ``dict``, refusing to overwrite scalars."""

    resolved = _resolve_key(mapping, key)
    if resolved not in mapping:
        mapping[resolved] = {}
    child = mapping[resolved]
    if not isinstance(child, dict):
        raise ValueError(f"Cannot override scalar with mapping for key {key}")
    return child


def _coerce(value: str) -> object:
    """Coerce textual environment values to Python primitives where possible.

    Examples
    --------
    >>> _coerce('true'), _coerce('10'), _coerce('3.5'), _coerce('hello')
    (True, 10, 3.5, 'hello')
    """

    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    try:
        if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
            return int(value)
        return float(value)
    except ValueError:
        return value
