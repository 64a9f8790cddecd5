from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from gwkit.domain.models import CodeGeneratorRequest
from gwkit.errors import GwkitError
from gwkit.generator.params import parse_parameter
from gwkit.orchestrator.pipeline import (
    generate_response,
    inspect_bindings,
    read_request,
    run_generate,
    write_files,
)

app = typer.Typer(
    name="gwkit",
    help="Generate FastAPI gateway modules from HTTP-annotated RPC service descriptors.",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

# stdout is reserved for the generator response
console = Console(stderr=True)


def _setup_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _load(input: Optional[str]) -> CodeGeneratorRequest:
    if input is None or input == "-":
        return read_request(text=sys.stdin.read())
    path = Path(input).expanduser()
    if not path.is_file():
        raise typer.BadParameter(f"Input file does not exist: {path}")
    return read_request(path=path)


def _overrides(params: list[str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for p in params:
        values.update(parse_parameter(p))
    return values


@app.command()
def generate(
    input: Optional[str] = typer.Option(None, "--input", "-i", help="Request JSON file (default: stdin)"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Write files under this directory instead of printing a response"),
    param: list[str] = typer.Option([], "--param", "-p", help="Extra generator parameter, e.g. gen_service or output_path=api"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="-v for info, -vv for debug logs"),
) -> None:
    _setup_logging(verbose)
    try:
        req = _load(input)
        overrides = _overrides(param)
    except GwkitError as e:
        console.print(f"[bold red]error[/bold red]: {e}")
        raise typer.Exit(code=1)

    if out is None:
        # plugin mode: one JSON response on stdout, errors included
        resp = generate_response(req, overrides)
        sys.stdout.write(resp.model_dump_json(exclude_none=True))
        sys.stdout.write("\n")
        if resp.error:
            raise typer.Exit(code=1)
        return

    try:
        result = run_generate(req, overrides)
    except GwkitError as e:
        console.print(f"[bold red]error[/bold red]: {e}")
        raise typer.Exit(code=1)

    out_dir = Path(out).expanduser()
    written = write_files(result.files, out_dir)
    console.print(f"[bold green]gwkit[/bold green] generate: {len(result.targets)} target file(s)")
    for p in written:
        console.print(f"  wrote {p}")
    for name in result.skipped:
        console.print(f"  [yellow]skipped[/yellow] {name} (no service with HTTP bindings)")


@app.command("inspect")
def inspect_cmd(
    input: Optional[str] = typer.Option(None, "--input", "-i", help="Request JSON file (default: stdin)"),
    param: list[str] = typer.Option([], "--param", "-p", help="Extra generator parameter"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    """List every binding with its body, path and query field mapping."""
    fmt = format.lower().strip()
    if fmt not in ("table", "json"):
        raise typer.BadParameter("format must be one of: table, json")

    try:
        rows = inspect_bindings(_load(input), _overrides(param))
    except GwkitError as e:
        console.print(f"[bold red]error[/bold red]: {e}")
        raise typer.Exit(code=1)

    if fmt == "json":
        typer.echo(json.dumps([asdict(r) for r in rows], indent=2))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("RPC", no_wrap=True)
    table.add_column("METHOD", no_wrap=True)
    table.add_column("PATH")
    table.add_column("BODY")
    table.add_column("PATH FIELDS")
    table.add_column("QUERY FIELDS")

    for r in rows:
        table.add_row(
            f"{r.service}.{r.method}",
            r.http_method,
            r.path,
            r.body or "-",
            ", ".join(r.path_fields) or "-",
            ", ".join(r.query_fields) or "-",
        )

    Console().print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
