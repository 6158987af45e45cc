"""
Synod CLI - validate, inspect and run agent manifests.
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from synod import __version__
from synod.config import RuntimeConfig
from synod.errors import DefinitionError
from synod.manifest.loader import ManifestLoadError, load_manifest
from synod.manifest.models import ResolvedGraph
from synod.manifest.resolver import resolve_manifest
from synod.observability import configure_logging
from synod.process.results import ProcessResult, ProcessStatus
from synod.providers.registry import CapabilityRegistry

console = Console()
err_console = Console(stderr=True)

EXIT_CODES = {
    ProcessStatus.COMPLETED: 0,
    ProcessStatus.FAILED: 2,
    ProcessStatus.CANCELLED: 3,
}


def _resolve(manifest: Path) -> ResolvedGraph:
    """Load and resolve a manifest, exiting 1 with the error on failure."""
    try:
        return resolve_manifest(load_manifest(manifest))
    except (ManifestLoadError, DefinitionError) as e:
        err_console.print(f"[red]✗[/red] {escape(str(e))}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default=None,
    help="Log renderer (default: from config / SYNOD_LOG_FORMAT)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, log_format: str | None) -> None:
    """Synod - run declarative multi-agent manifests."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["log_format"] = log_format
    configure_logging("DEBUG" if verbose else "WARNING", log_format or "console")


@main.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(manifest: Path) -> None:
    """Load and resolve MANIFEST, then summarize its components."""
    graph = _resolve(manifest)

    table = Table(title=str(manifest))
    table.add_column("Section")
    table.add_column("Component")
    table.add_column("Detail")
    for name, kernel in graph.kernels.items():
        capabilities = [c for c in ("reasoning", "embedding") if getattr(kernel, c) is not None]
        table.add_row("kernels", name, ", ".join(capabilities))
    for name, function in graph.functions.items():
        variables = ", ".join(v.name for v in function.input_variables)
        table.add_row("functions", name, variables or "-")
    for name, agent in graph.agents.items():
        table.add_row("agents", name, agent.mode)
    for name, memory in graph.memories.items():
        table.add_row("memories", name, memory.kind)
    for name, toolset in graph.toolsets.items():
        table.add_row("toolsets", name, toolset.kind)
    for name, policy in graph.authentication.items():
        table.add_row("authentication", name, policy.scheme)
    for name, process in graph.processes.items():
        table.add_row("processes", name, f"{process.kind}: {', '.join(process.agent_names)}")

    console.print(table)
    console.print("[green]✓[/green] Manifest is valid")


@main.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--format", "fmt", type=click.Choice(["yaml", "json"]), default="yaml", help="Output format"
)
def resolve(manifest: Path, fmt: str) -> None:
    """Print MANIFEST with every reference and inheritance resolved."""
    data = _resolve(manifest).to_dict()
    if fmt == "json":
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo(yaml.safe_dump(data, sort_keys=False, allow_unicode=True))


def _print_result(result: ProcessResult) -> None:
    style = {
        ProcessStatus.COMPLETED: "green",
        ProcessStatus.FAILED: "red",
        ProcessStatus.CANCELLED: "yellow",
    }[result.status]
    console.print(
        f"[bold]{result.process}[/bold] ({result.kind}) "
        f"[{style}]{result.status.value}[/{style}] "
        f"in {result.duration_ms}ms, {result.iterations} iteration(s)"
        + (" [yellow](iteration cap reached)[/yellow]" if result.cap_triggered else "")
    )

    if result.turns:
        table = Table(title="Turns")
        table.add_column("#", justify="right")
        table.add_column("Agent")
        table.add_column("Message")
        for index, message in enumerate(result.turns, start=1):
            table.add_row(str(index), message.name, escape(message.content))
        console.print(table)

    if result.outcomes:
        table = Table(title="Agents")
        table.add_column("Agent")
        table.add_column("Status")
        table.add_column("Response / error")
        table.add_column("Time", justify="right")
        for outcome in result.outcomes:
            status = "[green]ok[/green]" if outcome.ok else "[red]failed[/red]"
            detail = outcome.response if outcome.ok else outcome.error
            table.add_row(outcome.agent, status, escape(detail or ""), f"{outcome.duration_ms}ms")
        console.print(table)

    if result.error is not None:
        console.print(f"[red]{type(result.error).__name__}:[/red] {escape(str(result.error))}")
    if result.output is not None:
        output = result.output
        if not isinstance(output, str):
            output = json.dumps(output, indent=2, ensure_ascii=False)
        console.print("\n[bold]Result[/bold]")
        console.print(output, markup=False)


async def _run_process(
    graph: ResolvedGraph, manifest: Path, process: str, prompt: str, config: RuntimeConfig
) -> ProcessResult:
    from synod.runtime import Runtime

    runtime = Runtime(graph, config=config, registry=CapabilityRegistry(base_dir=manifest.parent))
    async with runtime:
        return await runtime.run(process, prompt)


@main.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("process")
@click.argument("prompt")
@click.option("--config", "config_path", type=Path, help="Runtime config file (YAML)")
@click.option("--json", "as_json", is_flag=True, help="JSON output")
@click.pass_context
def run(
    ctx: click.Context,
    manifest: Path,
    process: str,
    prompt: str,
    config_path: Path | None,
    as_json: bool,
) -> None:
    """Run PROCESS from MANIFEST on PROMPT."""
    config = RuntimeConfig.load(config_path)
    level = "DEBUG" if ctx.obj.get("verbose") else config.log_level
    configure_logging(level, ctx.obj.get("log_format") or config.log_format)

    graph = _resolve(manifest)
    if process not in graph.processes:
        err_console.print(f"[red]✗[/red] unknown process {escape(repr(process))}")
        sys.exit(1)
    result = asyncio.run(_run_process(graph, manifest, process, prompt, config))

    if as_json:
        payload: dict[str, Any] = result.to_dict()
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))
    else:
        _print_result(result)
    sys.exit(EXIT_CODES[result.status])


if __name__ == "__main__":
    main()
