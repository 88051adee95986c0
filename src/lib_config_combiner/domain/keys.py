"""Cache keys identifying one typed configuration entry.

Purpose
-------
Describe *what* a consumer asked for: a name, the declared type, and for
containers or structural decodes the element type. Keys index the combiner's
cache, so they are immutable and hashable.

Contents
--------
* :class:`TypeTag` – the closed set of declared types.
* :class:`Key` – frozen value object with convenience constructors.
* :func:`is_compatible` – decides whether a cached entry satisfies a request.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import InvalidArgument


class TypeTag(str, Enum):
    """Declared type of a configuration entry."""

    BOOL = "bool"
    INT = "int"
    LONG = "long"
    DOUBLE = "double"
    STRING = "string"
    LIST = "list"
    MAP = "map"
    SET = "set"
    CUSTOM = "custom"

    @property
    def needs_element(self) -> bool:
        return self in _ELEMENT_TAGS


_ELEMENT_TAGS = frozenset({TypeTag.LIST, TypeTag.MAP, TypeTag.SET, TypeTag.CUSTOM})


@dataclass(frozen=True, slots=True)
class Key:
    """Identify a requested configuration entry by name and type.

    Examples
    --------
    >>> Key.list_("servers", str)
    Key(name='servers', declared_type=<TypeTag.LIST: 'list'>, element_type=<class 'str'>)
    >>> Key.int_("port") == Key("port", TypeTag.INT)
    True
    """

    name: str
    declared_type: TypeTag
    element_type: type | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise InvalidArgument(f"key name must be a non-empty string, got {self.name!r}")
        if self.declared_type.needs_element and self.element_type is None:
            raise InvalidArgument(f"{self.declared_type.value} key {self.name!r} requires an element type")

    def describe(self) -> str:
        """Return a compact description such as ``list[int]`` for messages and logs."""

        if self.element_type is None:
            return self.declared_type.value
        return f"{self.declared_type.value}[{_type_name(self.element_type)}]"

    def renamed(self, name: str) -> Key:
        """Return the same typed key under another *name* (used by subset views)."""

        return Key(name, self.declared_type, self.element_type)

    @classmethod
    def bool_(cls, name: str) -> Key:
        return cls(name, TypeTag.BOOL)

    @classmethod
    def int_(cls, name: str) -> Key:
        return cls(name, TypeTag.INT)

    @classmethod
    def long_(cls, name: str) -> Key:
        return cls(name, TypeTag.LONG)

    @classmethod
    def double(cls, name: str) -> Key:
        return cls(name, TypeTag.DOUBLE)

    @classmethod
    def string(cls, name: str) -> Key:
        return cls(name, TypeTag.STRING)

    @classmethod
    def list_(cls, name: str, element: type) -> Key:
        return cls(name, TypeTag.LIST, element)

    @classmethod
    def map_(cls, name: str, element: type) -> Key:
        return cls(name, TypeTag.MAP, element)

    @classmethod
    def set_(cls, name: str, element: type) -> Key:
        return cls(name, TypeTag.SET, element)

    @classmethod
    def custom(cls, name: str, target: type) -> Key:
        return cls(name, TypeTag.CUSTOM, target)


def is_compatible(requested: Key, stored: Key) -> bool:
    """Return ``True`` when the cached *stored* entry can answer *requested*.

    Declared types must match exactly. Element types must be identical, or the
    stored element type must be a subclass of the requested one, so a cached
    ``list[int]`` answers a request for ``list[numbers.Number]`` but not the
    reverse. Booleans are never integers, so a cached ``list[bool]`` answers
    only ``bool`` or ``object`` element requests.

    Examples
    --------
    >>> import numbers
    >>> is_compatible(Key.list_("a", numbers.Number), Key.list_("a", int))
    True
    >>> is_compatible(Key.list_("a", int), Key.list_("a", numbers.Number))
    False
    >>> is_compatible(Key.list_("a", int), Key.list_("a", bool))
    False
    >>> is_compatible(Key.int_("a"), Key.long_("a"))
    False
    """

    if requested.name != stored.name or requested.declared_type is not stored.declared_type:
        return False
    if requested.element_type is stored.element_type:
        return True
    if requested.element_type is None or stored.element_type is None:
        return False
    if stored.element_type is bool and requested.element_type not in (bool, object):
        return False
    try:
        return issubclass(stored.element_type, requested.element_type)
    except TypeError:
        return False


def _type_name(value: type) -> str:
    return getattr(value, "__name__", repr(value))
