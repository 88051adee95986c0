"""Typed, observable configuration values combined from refreshable sources.

Consumers ask a :class:`Combiner` for a key and type and receive a
:class:`ValueHandle`; the first source (in priority order) defining the key
supplies the value, which is cached until :meth:`Combiner.update` detects a
change and notifies registered observers.
"""

from __future__ import annotations

from .adapters.sources.env import EnvSource, default_env_prefix
from .adapters.sources.memory import MapSource
from .adapters.sources.structured import JSONSource, TOMLSource, YAMLSource, source_for_path
from .application.combiner import Combiner, CombinerOptions, SubsetView, ValueHandle
from .application.ports import ALL_KEYS, Observer, Source
from .core import combine_files
from .domain.constant import ConstantValue
from .domain.errors import (
    BadTypeError,
    ConcurrencyError,
    ConfigError,
    InvalidArgument,
    MissingKeyError,
    SourceError,
)
from .domain.keys import Key, TypeTag, is_compatible
from .observability import bind_trace_id, get_logger

__all__ = [
    "ALL_KEYS",
    "BadTypeError",
    "Combiner",
    "CombinerOptions",
    "ConcurrencyError",
    "ConfigError",
    "ConstantValue",
    "EnvSource",
    "InvalidArgument",
    "JSONSource",
    "Key",
    "MapSource",
    "MissingKeyError",
    "Observer",
    "Source",
    "SourceError",
    "SubsetView",
    "TOMLSource",
    "TypeTag",
    "ValueHandle",
    "YAMLSource",
    "bind_trace_id",
    "combine_files",
    "default_env_prefix",
    "get_logger",
    "is_compatible",
    "source_for_path",
]
