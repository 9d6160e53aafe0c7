from __future__ import annotations

import importlib
import sys

import typer

from widerow.config import get_settings
from widerow.errors import PreconditionError
from widerow.infrastructure.gateway import Gateway
from widerow.utils.logging import configure_logging

app = typer.Typer(help="widerow: typed entities and paged wide rows over a column-family store.")


def _load_gateway(target: str) -> Gateway:
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise typer.BadParameter("expected 'module:attribute'", param_hint="TARGET")
    module = importlib.import_module(module_name)
    gateway = getattr(module, attr, None)
    if not isinstance(gateway, Gateway):
        raise typer.BadParameter(f"{target} is not a Gateway", param_hint="TARGET")
    return gateway


def _describe_type(cls: type) -> str:
    options = cls._options
    lines = [f"{options.cfname} ({cls.__type__} {cls.__name__}) key_alias={options.key_alias}"]
    if cls.__type__ == "ModelArray":
        flags = []
        if options.reversed:
            flags.append("reversed")
        if options.shards:
            flags.append("shards=" + ",".join(repr(s) for s in options.shards))
        lines.append(f"  primary: {options.primary}" + (f" [{' '.join(flags)}]" if flags else ""))
        return "\n".join(lines)

    for name, attr in cls.schema().items():
        marker = " (primary)" if attr.primary else ""
        lines.append(f"  {name}: {getattr(attr.type, '__name__', attr.type)}{marker}")
    for name, assoc in cls.associations().items():
        try:
            target = assoc.target_for(cls).__name__
        except PreconditionError:
            target = f"{assoc._target} (unresolved)"
        lines.append(f"  {name}: {assoc.kind} -> {target}")
    return "\n".join(lines)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    consistency = " ".join(f"{kind}={level}" for kind, level in settings.consistency().items())
    typer.echo(
        f"env={settings.app_env} key_alias={settings.key_alias} | consistency {consistency} | "
        f"retry attempts={settings.retry_attempts} backoff={settings.retry_backoff_seconds}s"
        f"..{settings.retry_backoff_max_seconds}s"
    )


@app.command()
def describe(
    target: str = typer.Argument(..., help="Gateway to inspect, as 'module:attribute'."),
) -> None:
    """
    List every type registered with a gateway.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    gateway = _load_gateway(target)
    if not len(gateway.registry):
        typer.echo("No registered types.")
        return
    for cls in gateway.registry:
        typer.echo(_describe_type(cls))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
