"""Composition root for ``lib_config_combiner``.

Purpose
-------
Wire file and environment sources into a :class:`Combiner` for the common
case of "these files, optionally overridden by the environment". Consumers
with other needs build sources themselves and call :class:`Combiner`
directly.

Contents
--------
* :func:`combine_files` – build a combiner from file paths (+ env prefix).
* :func:`build_sources` – the source list :func:`combine_files` uses.

System Role
-----------
This module connects adapters (structured files, environment) with the
application-layer combiner; it is the canonical place for adjusting source
precedence.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence

from .adapters.sources.env import EnvSource, default_env_prefix
from .adapters.sources.memory import MapSource
from .adapters.sources.structured import source_for_path
from .application.combiner import Combiner, CombinerOptions
from .application.ports import Source
from .observability import log_info, make_event


def build_sources(
    paths: Sequence[str | Path],
    *,
    env_prefix: str | None = None,
    environ: Mapping[str, str] | None = None,
    defaults: Mapping[str, object] | None = None,
) -> list[Source]:
    """Return sources in priority order: environment, then *paths* in order, then *defaults*.

    Examples
    --------
    >>> [source.name for source in build_sources([], env_prefix="DEMO", environ={}, defaults={"a": 1})]
    ['env', 'defaults']
    """

    sources: list[Source] = []
    if env_prefix:
        sources.append(EnvSource(env_prefix, environ=environ))
    sources.extend(source_for_path(path) for path in paths)
    if defaults is not None:
        sources.append(MapSource(defaults, name="defaults"))
    return sources


def combine_files(
    *paths: str | Path,
    slug: str | None = None,
    environ: Mapping[str, str] | None = None,
    defaults: Mapping[str, object] | None = None,
    options: CombinerOptions | None = None,
) -> Combiner:
    """Build a :class:`Combiner` over *paths*, the first path winning.

    Parameters
    ----------
    paths:
        JSON, YAML or TOML files, highest priority first. Each file is re-read
        whenever the combiner checks for updates.
    slug:
        When given, environment variables prefixed with
        ``default_env_prefix(slug)`` override every file.
    environ:
        Mapping used instead of :data:`os.environ` (tests).
    defaults:
        Lowest-priority in-memory values.
    options:
        Forwarded to :class:`Combiner`.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> target = Path(tmp.name) / "app.yaml"
    >>> _ = target.write_text("service:\\n  timeout: 15\\n", encoding="utf-8")
    >>> combiner = combine_files(target, slug="demo", environ={"DEMO_SERVICE__TIMEOUT": "30"})
    >>> combiner.int_("service.timeout").v()
    30
    >>> tmp.cleanup()
    """

    env_prefix = default_env_prefix(slug) if slug else None
    sources = build_sources(paths, env_prefix=env_prefix, environ=environ, defaults=defaults)
    combiner = Combiner(*sources, options=options)
    log_info("combiner_built", **make_event(None, None, {"combiner": combiner.name, "sources": len(sources)}))
    return combiner


__all__ = ["build_sources", "combine_files"]
