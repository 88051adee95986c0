"""Structured document sources (JSON, YAML, TOML).

Purpose
-------
Parse text documents into the nested mappings :class:`~.base.TreeSource`
serves from. Adapters are thin wrappers around ``json``/``yaml.safe_load``/
``tomllib`` so error handling and observability live in one place.

Contents
--------
* :class:`TextSource` – shared text handling and ``from_file`` constructor.
* :class:`JSONSource` – JSON documents.
* :class:`YAMLSource` – YAML documents (PyYAML ``safe_load``).
* :class:`TOMLSource` – TOML documents.

System Role
-----------
The pull callable is invoked on construction, on ``copy()`` and on
``is_updatable()``; only the hash of the last parsed text is retained, so the
update check never re-parses.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, ClassVar, Union

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[no-redef]

import yaml

from ...domain.errors import SourceError
from ...observability import log_debug
from .base import TreeSource, as_supplier

TextPayload = Union[str, Callable[[], str]]


class TextSource(TreeSource):
    """Base for sources whose raw payload is a text document."""

    kind: ClassVar[str] = "text"

    def __init__(self, text: TextPayload, *, name: str | None = None) -> None:
        super().__init__(as_supplier(text), name=name or self.kind)

    @classmethod
    def from_file(cls, path: str | Path, *, name: str | None = None) -> TextSource:
        """Build a source re-reading *path* on every pull.

        Why
        ----
        Lets a file-watch callback or timer drive ``Combiner.update`` without
        the source caching file contents beyond the fingerprint.

        Examples
        --------
        >>> from tempfile import TemporaryDirectory
        >>> tmp = TemporaryDirectory()
        >>> target = Path(tmp.name) / "app.json"
        >>> _ = target.write_text('{"debug": true}', encoding="utf-8")
        >>> JSONSource.from_file(target).read_bool("debug")
        True
        >>> tmp.cleanup()
        """

        file_path = Path(path)
        label = name or str(file_path)

        def _read() -> str:
            try:
                payload = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise SourceError(label, f"cannot read {file_path}: {exc}") from exc
            log_debug("source_file_read", source=label, key=None, path=str(file_path), size=len(payload))
            return payload

        return cls(_read, name=label)

    def _pull(self) -> Any:
        raw = super()._pull()
        if raw is not None and not isinstance(raw, str):
            raise SourceError(self.name, f"supplier returned {type(raw).__name__}, expected str")
        return raw


class JSONSource(TextSource):
    """Serve values from a JSON document.

    Examples
    --------
    >>> JSONSource('{"db": {"port": 5432}}').read_int("db.port")
    5432
    """

    kind: ClassVar[str] = "json"

    def _parse(self, raw: Any) -> Mapping[str, Any]:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise self._invalid(exc) from exc


class YAMLSource(TextSource):
    """Serve values from a YAML document; an empty document is an empty mapping."""

    kind: ClassVar[str] = "yaml"

    def _parse(self, raw: Any) -> Mapping[str, Any]:
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise self._invalid(exc) from exc
        return {} if data is None else data


class TOMLSource(TextSource):
    """Serve values from a TOML document."""

    kind: ClassVar[str] = "toml"

    def _parse(self, raw: Any) -> Mapping[str, Any]:
        try:
            return tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise self._invalid(exc) from exc


SOURCES_BY_SUFFIX: dict[str, type[TextSource]] = {
    ".json": JSONSource,
    ".yaml": YAMLSource,
    ".yml": YAMLSource,
    ".toml": TOMLSource,
}
"""Structured sources keyed by file suffix, used by :func:`source_for_path`."""


def source_for_path(path: str | Path, *, name: str | None = None) -> TextSource:
    """Return the file-backed source matching the suffix of *path*.

    Examples
    --------
    >>> source_for_path("settings.ini")
    Traceback (most recent call last):
    ...
    lib_config_combiner.domain.errors.SourceError: source 'settings.ini': unsupported file type '.ini'
    """

    file_path = Path(path)
    source_cls = SOURCES_BY_SUFFIX.get(file_path.suffix.lower())
    if source_cls is None:
        raise SourceError(name or str(file_path), f"unsupported file type {file_path.suffix!r}")
    return source_cls.from_file(file_path, name=name)
