"""Constant value handles built from literals.

A :class:`ConstantValue` offers the same surface as a combiner-backed
``ValueHandle`` but never changes, so observer registration is accepted and
ignored. Useful as a default wherever a handle is expected.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

from .errors import MissingKeyError

T = TypeVar("T")

_MISSING: Any = object()


class ConstantValue(Generic[T]):
    """Handle whose value is fixed at construction time.

    Examples
    --------
    >>> ConstantValue.of(3).v()
    3
    >>> ConstantValue.missing("port").v(8080)
    8080
    """

    __slots__ = ("_name", "_value")

    def __init__(self, name: str = "", value: Any = _MISSING) -> None:
        self._name = name
        self._value = value

    @classmethod
    def of(cls, value: T, name: str = "") -> ConstantValue[T]:
        return cls(name, value)

    @classmethod
    def missing(cls, name: str = "") -> ConstantValue[Any]:
        return cls(name)

    @property
    def name(self) -> str:
        return self._name

    def exists(self) -> bool:
        return self._value is not _MISSING

    def v(self, default: Any = _MISSING) -> T:
        if self._value is not _MISSING:
            return self._value
        if default is not _MISSING:
            return default
        raise MissingKeyError(self._name)

    def register(self, observer: Callable[[str], None], *, weak: bool = True) -> ConstantValue[T]:
        # The value never changes, so there is nothing to notify about.
        return self

    def register_and_call(self, observer: Callable[[str], None], *, weak: bool = True) -> ConstantValue[T]:
        observer(self._name)
        return self

    def deregister(self, observer: Callable[[str], None]) -> ConstantValue[T]:
        return self

    def __repr__(self) -> str:
        shown = repr(self._value) if self.exists() else "<missing>"
        return f"ConstantValue({self._name!r}={shown})"
