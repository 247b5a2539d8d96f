from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import typer

from shardcache import FileCache, ValidationError, load_config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = typer.Typer(help="shardcache CLI")
debug_app = typer.Typer(help="Debug commands")
app.add_typer(debug_app, name="debug")

T = TypeVar("T")


@app.callback()
def main_options(
    ctx: typer.Context,
    root: Path | None = typer.Option(
        None,
        "--root",
        help="Cache root directory. Overrides --config.",
    ),
    config_path: Path | None = typer.Option(
        None,
        "--config",
        help="YAML/JSON config file with cache settings.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Operate on a shardcache directory."""
    ctx.obj = {"root": root, "config": config_path}


@app.command("get")
def get_value(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key."),
    default: str | None = typer.Option(None, "--default", help="Printed on a miss."),
) -> None:
    """Print a cached value."""
    cache = _open_cache(ctx)
    missing = object()
    value = _guard(lambda: cache.get(key, missing))
    if value is missing:
        if default is None:
            typer.echo(f"miss: {key}", err=True)
            raise typer.Exit(code=1)
        value = default
    typer.echo(_render_value(value))


@app.command("set")
def set_value(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Cache key."),
    value: str = typer.Argument(..., help="Value to store."),
    ttl: int | None = typer.Option(None, "--ttl", help="Time-to-live in seconds."),
    as_json: bool = typer.Option(False, "--json", help="Parse VALUE as JSON before storing."),
) -> None:
    """Store a value."""
    cache = _open_cache(ctx)
    payload: Any = value
    if as_json:
        try:
            payload = json.loads(value)
        except json.JSONDecodeError as exc:
            typer.echo(f"invalid JSON value: {exc}", err=True)
            raise typer.Exit(code=2) from exc

    if not _guard(lambda: cache.set(key, payload, ttl)):
        typer.echo(f"set failed: {key}", err=True)
        raise typer.Exit(code=1)
    typer.echo("ok")


@app.command("delete")
def delete_value(ctx: typer.Context, key: str = typer.Argument(..., help="Cache key.")) -> None:
    """Delete one entry."""
    cache = _open_cache(ctx)
    if not _guard(lambda: cache.delete(key)):
        typer.echo(f"delete failed: {key}", err=True)
        raise typer.Exit(code=1)
    typer.echo("ok")


@app.command("has")
def has_value(ctx: typer.Context, key: str = typer.Argument(..., help="Cache key.")) -> None:
    """Exit 0 when the key holds a live entry, 1 otherwise."""
    cache = _open_cache(ctx)
    present = _guard(lambda: cache.has(key))
    typer.echo("yes" if present else "no")
    if not present:
        raise typer.Exit(code=1)


@app.command("incr")
def increment_value(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Counter key."),
    step: int = typer.Option(1, "--step", help="Amount to add."),
) -> None:
    """Atomically add STEP to a counter."""
    cache = _open_cache(ctx)
    _echo_counter(key, _guard(lambda: cache.increment(key, step)))


@app.command("decr")
def decrement_value(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Counter key."),
    step: int = typer.Option(1, "--step", help="Amount to subtract."),
) -> None:
    """Atomically subtract STEP from a counter."""
    cache = _open_cache(ctx)
    _echo_counter(key, _guard(lambda: cache.decrement(key, step)))


@app.command("clear")
def clear_cache(ctx: typer.Context) -> None:
    """Remove every entry."""
    cache = _open_cache(ctx)
    if not cache.clear():
        typer.echo("clear finished with failures", err=True)
        raise typer.Exit(code=1)
    typer.echo("ok")


@app.command("clean-expired")
def clean_expired(ctx: typer.Context) -> None:
    """Remove expired entries. Schedule this, e.g. nightly from cron."""
    cache = _open_cache(ctx)
    removed = cache.clean_expired()
    typer.echo(f"removed={removed}")


@app.command("path")
def show_path(ctx: typer.Context, key: str = typer.Argument(..., help="Cache key.")) -> None:
    """Print the file path an entry is stored at."""
    cache = _open_cache(ctx)
    typer.echo(str(_guard(lambda: cache.path_for(key))))


@debug_app.command("storage")
def debug_storage(ctx: typer.Context) -> None:
    """Run storage smoke test."""
    cache = _open_cache(ctx)

    cache_key = "debug.storage"
    counter_key = "debug.counter"
    cache_value = {"status": "smoke_ok"}
    cache.set(cache_key, cache_value, ttl=60)
    cached_value = cache.get(cache_key)
    counter = cache.increment(counter_key)
    cache.delete_multiple([cache_key, counter_key])

    if cached_value != cache_value or counter is False:
        typer.echo("storage smoke test failed", err=True)
        raise typer.Exit(code=1)

    typer.echo("storage ok")


def _open_cache(ctx: typer.Context) -> FileCache:
    root: Path | None = ctx.obj["root"]
    config_path: Path | None = ctx.obj["config"]
    try:
        if config_path is not None:
            config = load_config(config_path)
            if root is not None:
                config = config.model_copy(update={"root": str(root)})
            return FileCache.from_config(config)
        if root is not None:
            return FileCache(root)
    except ValidationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc

    typer.echo("either --root or --config is required", err=True)
    raise typer.Exit(code=2)


def _guard(operation: Callable[[], T]) -> T:
    try:
        return operation()
    except ValidationError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2) from exc


def _echo_counter(key: str, value: int | bool) -> None:
    if value is False:
        typer.echo(f"counter update failed: {key}", err=True)
        raise typer.Exit(code=1)
    typer.echo(str(value))


def _render_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(value)


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
