"""PersistCache CLI - Engine Conformance Harness.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

import asyncio
import importlib
import json
import logging
from typing import Any, Dict, List, Optional

import typer

from persistcache_core.engines.registry import EngineRegistry, get_default_registry
from persistcache_core.errors import ConformanceError

app = typer.Typer(
    name="persistcache",
    help="PersistCache - persistence engine tools",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


def _import_engine(target: str) -> Any:
    """Import ``package.module:Class``."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter(f"Expected package.module:Class, got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"Cannot import {module_name}: {e}")
    try:
        return getattr(module, attr)
    except AttributeError:
        raise typer.BadParameter(f"{module_name} has no attribute {attr!r}")


def _parse_value(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _parse_options(values: List[str]) -> Dict[str, Dict[str, Any]]:
    """Parse ``name.key=value`` pairs into per-engine option dicts."""
    options: Dict[str, Dict[str, Any]] = {}
    for item in values:
        target, sep, raw = item.partition("=")
        name, dot, key = target.partition(".")
        if not sep or not dot or not name or not key:
            raise typer.BadParameter(f"Expected name.key=value, got {item!r}")
        options.setdefault(name, {})[key] = _parse_value(raw)
    return options


def _resolve_engines(registry: EngineRegistry, engines: List[str]) -> List[str]:
    names = []
    for spec in engines:
        name, _, target = spec.partition("=")
        if target:
            if name in registry:
                raise typer.BadParameter(f"Engine {name!r} is already registered")
            registry.register(name, _import_engine(target))
        elif name not in registry:
            raise typer.BadParameter(
                f"No {name!r} engine registered; known engines: {', '.join(registry.names())}"
            )
        names.append(name)
    return names


async def _run_suites(
    registry: EngineRegistry,
    names: List[str],
    options: Dict[str, Dict[str, Any]],
) -> List[Any]:
    return [await registry.test_engine(name, options.get(name, {})) for name in names]


@app.command("engines")
def list_engines():
    """List registered persistence engines."""
    names = get_default_registry().names()
    if not names:
        typer.echo("No engines registered")
        return

    typer.echo("Registered engines:")
    for name in names:
        typer.echo(f"  {name}")


@app.command("test")
def run_tests(
    engines: Optional[List[str]] = typer.Argument(
        None,
        help="Engine names, or name=package.module:Class to import and register",
    ),
    all_engines: bool = typer.Option(False, "--all", help="Test every registered engine"),
    option: Optional[List[str]] = typer.Option(
        None,
        "--option",
        "-o",
        help="Engine option as name.key=value (value parsed as JSON when possible)",
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    """Run the conformance suite against persistence engines."""
    logging.basicConfig(level=log_level.upper())

    registry = get_default_registry()
    names = _resolve_engines(registry, engines or [])
    if all_engines:
        names = registry.names()
    if not names:
        typer.echo("No engines specified; pass engine names or --all", err=True)
        raise typer.Exit(2)

    options = _parse_options(option or [])
    typer.echo(f"Testing engines: {' '.join(names)}")

    reports = asyncio.run(_run_suites(registry, names, options))

    failed = 0
    for report in reports:
        try:
            report.raise_for_failures()
        except ConformanceError as e:
            failed += 1
            typer.echo(f"  [FAIL] {report.name}")
            for failure in report.failures:
                typer.echo(f"         {failure}")
            logger.debug(str(e))
            continue
        typer.echo(f"  [PASS] {report.name} ({len(report.passed)} checks)")

    if failed:
        typer.echo(f"{failed} of {len(reports)} engines failed")
        raise typer.Exit(1)
    typer.echo("All engines passed")


if __name__ == "__main__":
    app()
