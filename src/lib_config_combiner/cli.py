"""CLI adapter for ``lib_config_combiner`` built on ``lib_cli_exit_tools``.

Purpose
-------
Let operators resolve a key across several configuration files, and watch it
change, without writing Python. The CLI mirrors the library semantics: the
first ``--source`` wins, values are read with an explicit type.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command wiring traceback handling into ``lib_cli_exit_tools``.
* :func:`cli_info` – prints distribution metadata.
* :func:`cli_get` – resolves one key and prints it as JSON.
* :func:`cli_watch` – polls ``Combiner.update`` and prints the key on change.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
Outermost layer: calls the composition root (:func:`combine_files`) and never
reaches into adapter internals.
"""

from __future__ import annotations

import json
import sys
import time
from importlib import metadata
from pathlib import Path
from typing import Any, Final, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click

from .application.combiner import Combiner, ValueHandle
from .core import combine_files
from .domain.errors import ConfigError
from .domain.keys import Key, TypeTag

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000

TYPE_CHOICES: Final[tuple[str, ...]] = tuple(tag.value for tag in TypeTag if tag is not TypeTag.CUSTOM)
ELEMENT_TYPES: Final[dict[str, type]] = {"any": object, "str": str, "int": int, "float": float, "bool": bool}


def _resolve_version() -> str:
    """Return the installed package version, ``"0.0.0"`` when metadata is unavailable."""

    try:
        return metadata.version("lib_config_combiner")
    except metadata.PackageNotFoundError:
        return "0.0.0"


_SOURCE_OPTION = click.option(
    "--source",
    "-s",
    "sources",
    multiple=True,
    required=True,
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
    help="JSON, YAML or TOML file (repeatable, first one wins)",
)
_TYPE_OPTION = click.option(
    "--type",
    "type_name",
    type=click.Choice(TYPE_CHOICES, case_sensitive=False),
    default=TypeTag.STRING.value,
    show_default=True,
    help="Type the value is read as",
)
_ELEMENT_OPTION = click.option(
    "--element",
    type=click.Choice(tuple(ELEMENT_TYPES), case_sensitive=False),
    default="any",
    show_default=True,
    help="Element type for list, map and set values",
)
_SLUG_OPTION = click.option(
    "--slug",
    default=None,
    help="Let <SLUG>_* environment variables override the files",
)


@click.group(
    help="Typed configuration values combined from refreshable sources",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name="lib_config_combiner",
    message="lib_config_combiner version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.pass_context
def cli(ctx: click.Context, traceback: bool) -> None:
    """Root command storing the traceback preference for ``lib_cli_exit_tools``."""

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata("lib_config_combiner")
    except metadata.PackageNotFoundError:
        click.echo("lib_config_combiner (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', 'lib_config_combiner')}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")


@cli.command("get", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@_SOURCE_OPTION
@_TYPE_OPTION
@_ELEMENT_OPTION
@_SLUG_OPTION
@click.option("--default", "default", default=None, help="JSON value printed when the key is missing")
@click.option("--indent", type=int, default=None, help="Indentation for the JSON output")
def cli_get(
    name: str,
    sources: Sequence[Path],
    type_name: str,
    element: str,
    slug: Optional[str],
    default: Optional[str],
    indent: Optional[int],
) -> None:
    """Resolve NAME across the given sources and print it as JSON.

    Examples
    --------
    >>> from click.testing import CliRunner
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> target = Path(tmp.name) / "app.json"
    >>> _ = target.write_text('{"db": {"port": 5432}}', encoding="utf-8")
    >>> result = CliRunner().invoke(cli, ["get", "db.port", "-s", str(target), "--type", "int"])
    >>> result.output.strip()
    '5432'
    >>> tmp.cleanup()
    """

    combiner = _build(sources, slug)
    handle = combiner.get(_key_for(name, type_name, element))
    try:
        value = handle.v() if default is None else handle.v(_parse_default(default))
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(_render(value, indent))


@cli.command("watch", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@_SOURCE_OPTION
@_TYPE_OPTION
@_ELEMENT_OPTION
@_SLUG_OPTION
@click.option("--interval", type=click.FloatRange(min=0.0), default=1.0, show_default=True, help="Seconds between update checks")
@click.option("--count", type=click.IntRange(min=0), default=0, show_default=True, help="Number of checks, 0 runs forever")
def cli_watch(
    name: str,
    sources: Sequence[Path],
    type_name: str,
    element: str,
    slug: Optional[str],
    interval: float,
    count: int,
) -> None:
    """Print NAME now and again every time an update changes it."""

    combiner = _build(sources, slug)
    handle = combiner.get(_key_for(name, type_name, element))

    def _show(_key: str) -> None:
        click.echo(_render(_current(handle), None))

    handle.register_and_call(_show)
    checks = 0
    while count == 0 or checks < count:
        time.sleep(interval)
        try:
            combiner.update()
        except ConfigError as exc:
            click.echo(f"update failed: {exc}", err=True)
        checks += 1


def _build(sources: Sequence[Path], slug: Optional[str]) -> Combiner:
    try:
        return combine_files(*sources, slug=slug)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _key_for(name: str, type_name: str, element: str) -> Key:
    tag = TypeTag(type_name.lower())
    if tag.needs_element:
        return Key(name, tag, ELEMENT_TYPES[element.lower()])
    return Key(name, tag)


def _current(handle: ValueHandle[Any]) -> Any:
    try:
        return handle.v()
    except ConfigError as exc:
        return {"error": str(exc)}


def _parse_default(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _render(value: Any, indent: Optional[int]) -> str:
    if isinstance(value, (set, frozenset)):
        value = sorted(value, key=lambda item: (type(item).__name__, item))
    return json.dumps(value, indent=indent, ensure_ascii=False, default=str)


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name="lib_config_combiner",
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
