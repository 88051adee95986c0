"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by sources, the combiner, and
consuming applications. The hierarchy lives in the domain layer so adapters and
the application layer can both raise it without importing each other.

Contents
--------
* :class:`ConfigError` – umbrella base class for all library failures.
* :class:`MissingKeyError` – key absent from every source at read time.
* :class:`BadTypeError` – key present but not coercible to the requested type.
* :class:`SourceError` – a backend could not produce a snapshot.
* :class:`ConcurrencyError` – internal locking invariant violated.
* :class:`InvalidArgument` – caller passed an unusable argument.

System Role
-----------
Callers catch :class:`ConfigError` to handle all library failures uniformly;
:class:`MissingKeyError` is the only error deliberately deferred (handles for
absent keys can be requested safely, only dereferencing them raises).
"""

from __future__ import annotations


class ConfigError(Exception):
    """Base type for all exceptions emitted by ``lib_config_combiner``."""


class MissingKeyError(ConfigError, KeyError):
    """Raised when no source defines *key*, or it disappeared on update.

    Why
    ----
    Absence is recoverable: ``handle.v(default)`` never raises it, only
    ``handle.v()`` does.

    Attributes
    ----------
    key:
        Name of the configuration entry that could not be found.
    """

    def __init__(self, key: str, source: str | None = None) -> None:
        self.key = key
        self.source = source
        where = f" in source {source!r}" if source else ""
        super().__init__(f"missing configuration key {key!r}{where}")

    def __str__(self) -> str:
        return str(self.args[0])


class BadTypeError(ConfigError, TypeError):
    """Raised when a key exists but its value cannot be read as the requested type.

    Attributes
    ----------
    key:
        Name of the offending entry.
    expected:
        Human readable description of the requested type.
    actual:
        Name of the type actually found in the source.
    """

    def __init__(self, key: str, expected: str, actual: str, detail: str | None = None) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        message = f"bad type for key {key!r}: expected {expected}, got {actual}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SourceError(ConfigError):
    """Wraps a failure of the underlying backend (malformed document, bad supplier).

    Not retried internally; surfaced to whoever triggered the resolving call.
    """

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"source {source!r}: {message}")


class ConcurrencyError(ConfigError):
    """Signals an internal locking invariant violation; not expected in normal operation."""


class InvalidArgument(ConfigError, ValueError):
    """Raised for unusable arguments such as empty key names or duplicate sources."""
