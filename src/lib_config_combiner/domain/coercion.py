"""Coercion contract shared by every source backend.

Purpose
-------
Turn a native node (as produced by ``json``, ``yaml.safe_load``, ``tomllib``
or handed over in a mapping) into the value a :class:`~.keys.Key` asks for.
All backends delegate here so the rules are identical across source kinds.

Rules
-----
* ``bool`` only accepts native booleans.
* ``int`` accepts native integers within the signed 32-bit range, ``long``
  within the signed 64-bit range. Booleans are never integers and nothing is
  implicitly narrowed.
* ``double`` only accepts native floats.
* ``string`` accepts a string, or a list of strings joined without separator.
* ``list`` / ``set`` / ``map`` require a list / list-or-set / mapping; each
  element is decoded with the element type. Sets drop duplicates.
* ``custom`` delegates to a pydantic ``TypeAdapter``; validation failures
  surface as :class:`~.errors.BadTypeError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.errors import PydanticSchemaGenerationError

from .errors import BadTypeError
from .keys import Key, TypeTag

INT_MIN, INT_MAX = -(2**31), 2**31 - 1
LONG_MIN, LONG_MAX = -(2**63), 2**63 - 1


def coerce(key: Key, node: Any) -> Any:
    """Return *node* converted to the type requested by *key* or raise ``BadTypeError``.

    Examples
    --------
    >>> coerce(Key.long_("n"), 12)
    12
    >>> coerce(Key.string("s"), ["ab", "cd"])
    'abcd'
    >>> coerce(Key.double("n"), 12)
    Traceback (most recent call last):
    ...
    lib_config_combiner.domain.errors.BadTypeError: bad type for key 'n': expected double, got int
    """

    tag = key.declared_type
    if tag is TypeTag.LIST:
        return [_element(key, item) for item in _require_list(key, node)]
    if tag is TypeTag.SET:
        items = node if isinstance(node, (set, frozenset)) else _require_list(key, node)
        return _as_set(key, [_element(key, item) for item in items])
    if tag is TypeTag.MAP:
        return _coerce_map(key, node)
    if tag is TypeTag.CUSTOM:
        return _decode_custom(key, key.element_type, node)
    return coerce_scalar(key.name, tag, node)


def coerce_scalar(name: str, tag: TypeTag, node: Any) -> Any:
    """Apply the scalar rules for *tag* to *node*."""

    if tag is TypeTag.BOOL:
        if isinstance(node, bool):
            return node
    elif tag is TypeTag.INT:
        if _is_integer(node) and INT_MIN <= node <= INT_MAX:
            return int(node)
    elif tag is TypeTag.LONG:
        if _is_integer(node) and LONG_MIN <= node <= LONG_MAX:
            return int(node)
    elif tag is TypeTag.DOUBLE:
        if isinstance(node, float):
            return node
    elif tag is TypeTag.STRING:
        if isinstance(node, str):
            return node
        if isinstance(node, list) and all(isinstance(item, str) for item in node):
            return "".join(node)
    else:
        raise BadTypeError(name, tag.value, actual_type(node), "not a scalar type")
    raise BadTypeError(name, tag.value, actual_type(node))


def actual_type(node: Any) -> str:
    """Describe the runtime type of *node* for error messages."""

    if node is None:
        return "null"
    if isinstance(node, bool):
        return "bool"
    if isinstance(node, int):
        return "int"
    return type(node).__name__


_SCALAR_ELEMENTS: dict[type, TypeTag] = {
    bool: TypeTag.BOOL,
    int: TypeTag.LONG,
    float: TypeTag.DOUBLE,
    str: TypeTag.STRING,
}


def _element(key: Key, item: Any) -> Any:
    element = key.element_type
    tag = _SCALAR_ELEMENTS.get(element)  # type: ignore[arg-type]
    if tag is not None:
        try:
            return coerce_scalar(key.name, tag, item)
        except BadTypeError as exc:
            raise BadTypeError(key.name, key.describe(), f"element of type {actual_type(item)}") from exc
    if element is object:
        return item
    return _decode_custom(key, element, item)


def _as_set(key: Key, items: list[Any]) -> set[Any]:
    try:
        return set(items)
    except TypeError as exc:
        raise BadTypeError(key.name, key.describe(), "unhashable elements", str(exc)) from exc


def _require_list(key: Key, node: Any) -> list[Any]:
    if not isinstance(node, list):
        raise BadTypeError(key.name, key.describe(), actual_type(node))
    return node


def _coerce_map(key: Key, node: Any) -> dict[str, Any]:
    if not isinstance(node, Mapping):
        raise BadTypeError(key.name, key.describe(), actual_type(node))
    result: dict[str, Any] = {}
    for name, item in node.items():
        if not isinstance(name, str):
            raise BadTypeError(key.name, key.describe(), f"mapping with {actual_type(name)} keys")
        result[name] = _element(key, item)
    return result


def _decode_custom(key: Key, target: type | None, node: Any) -> Any:
    if node is None:
        raise BadTypeError(key.name, key.describe(), "null")
    adapter = _adapter(target)
    if adapter is None:
        return _check_instance(key, target, node)
    try:
        return adapter.validate_python(node)
    except PydanticSchemaGenerationError:
        return _check_instance(key, target, node)
    except PydanticValidationError as exc:
        raise BadTypeError(key.name, key.describe(), actual_type(node), f"{exc.error_count()} validation error(s)") from exc


def _check_instance(key: Key, target: Any, node: Any) -> Any:
    """Accept *node* as is when it already is a *target*; booleans never pass as numbers."""

    if not isinstance(target, type) or not isinstance(node, target):
        raise BadTypeError(key.name, key.describe(), actual_type(node))
    if isinstance(node, bool) and issubclass(int, target):
        raise BadTypeError(key.name, key.describe(), "bool")
    return node


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter[Any] | None:
    """Return a validator for *target*, ``None`` for types pydantic cannot build a schema for (ABCs)."""

    try:
        return TypeAdapter(target)
    except PydanticSchemaGenerationError:
        return None


def _is_integer(node: Any) -> bool:
    return isinstance(node, int) and not isinstance(node, bool)
