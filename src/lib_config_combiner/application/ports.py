"""Application-layer ports describing what the combiner needs from its collaborators.

Purpose
-------
Define the structural contracts that source backends and observers must
satisfy so the combiner can orchestrate them without depending on concrete
implementations.

Contents
--------
* :class:`Source` – immutable snapshot of one backend exposing typed reads.
* :class:`Observer` – callback notified with the name of a changed key.
* :data:`ALL_KEYS` – the name passed to observers registered for every key.

System Role
-----------
Adapters under :mod:`lib_config_combiner.adapters.sources` implement
:class:`Source`; :mod:`lib_config_combiner.application.combiner` consumes it.
"""

from __future__ import annotations

from typing import Any, Final, Protocol, runtime_checkable

from ..domain.keys import Key

ALL_KEYS: Final[str] = ""
"""Key name handed to observers that watch every key."""


@runtime_checkable
class Source(Protocol):
    """Typed, read-only view of a backend at one point in time.

    Why
    ----
    The combiner scans sources in priority order and swaps them wholesale on
    update; it never mutates one. Each typed read fails with
    ``MissingKeyError`` when the key is absent and ``BadTypeError`` when the
    stored node cannot be coerced.
    """

    @property
    def name(self) -> str:
        """Unique name of the source within one combiner."""

    def read_bool(self, name: str) -> bool: ...

    def read_int(self, name: str) -> int: ...

    def read_long(self, name: str) -> int: ...

    def read_double(self, name: str) -> float: ...

    def read_string(self, name: str) -> str: ...

    def read_list(self, name: str, element: type) -> list[Any]: ...

    def read_map(self, name: str, element: type) -> dict[str, Any]: ...

    def read_set(self, name: str, element: type) -> set[Any]: ...

    def read_custom(self, name: str, target: type) -> Any: ...

    def read(self, key: Key) -> Any:
        """Read *key* dispatching on its declared type."""

    def contains(self, name: str) -> bool:
        """Return whether *name* is defined; never raises."""

    def is_updatable(self) -> bool:
        """Cheaply report whether the underlying data changed since this snapshot."""

    def copy(self) -> Source:
        """Re-read and re-parse the underlying data into a brand-new snapshot."""


class Observer(Protocol):
    """Callback invoked with the name of a changed key (``ALL_KEYS`` for global observers)."""

    def __call__(self, key: str) -> None: ...
