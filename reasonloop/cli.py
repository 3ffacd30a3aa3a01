"""Command-line entry point for reasonloop."""

import asyncio
import json
import os
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from reasonloop import __version__
from reasonloop.agent import Agent
from reasonloop.config import Config, set_config
from reasonloop.credentials import credentials_from_env
from reasonloop.llm import get_provider_spec, list_providers
from reasonloop.logging import configure_logging, get_logger
from reasonloop.schemas import AgentRequest
from reasonloop.streaming import StreamEvent

log = get_logger(__name__)

app = typer.Typer(help="reasonloop - run a tool-calling LLM agent loop")
console = Console()
err_console = Console(stderr=True)


def _load_config(config: str, verbose: bool) -> Config:
    if verbose:
        os.environ["REASONLOOP_LOGGING__LEVEL"] = "DEBUG"
    if config:
        try:
            cfg = Config.from_yaml(Path(config))
        except Exception as e:
            err_console.print(f"[red]Failed to load config {config}: {e}[/red]")
            raise typer.Exit(code=2) from e
    else:
        cfg = Config.load()
    set_config(cfg)
    configure_logging("DEBUG" if verbose else None)
    return cfg


def _print_event(event: StreamEvent) -> None:
    data = event.data
    if event.type == "token":
        console.print(data.get("content", ""), end="", markup=False, highlight=False)
    elif event.type == "think":
        err_console.print(f"[dim]{data.get('content', '')}[/dim]")
    elif event.type == "tool_start":
        err_console.print(f"[cyan]→ {data.get('tool')}[/cyan] {json.dumps(data.get('input', {}), default=str)}")
    elif event.type == "tool_complete":
        err_console.print(f"[cyan]← {data.get('tool')}[/cyan] ({data.get('duration_ms')} ms)")
    elif event.type == "error" and data.get("recoverable"):
        err_console.print(f"[yellow]{data.get('error')}[/yellow]")


@app.command()
def run(
    message: str = typer.Argument(..., help="Message to send to the agent"),
    model: str = typer.Option("", "-m", "--model", help="Model identifier, e.g. openai/gpt-4o-mini"),
    system: str = typer.Option("", "-s", "--system", help="System prompt"),
    json_mode: bool = typer.Option(False, "--json-mode", help="Parse the final answer as JSON"),
    max_iterations: int = typer.Option(0, "--max-iterations", help="Turn budget (>= 2)"),
    stream: bool = typer.Option(False, "--stream", help="Print streaming events"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Run one request through the agent loop."""
    cfg = _load_config(config, verbose)

    model_config = cfg.model.model_copy()
    if model:
        model_config.model = model
    if json_mode:
        model_config.json_mode = True

    payload: dict = {
        "message": message,
        "model": model_config,
        "credentials": credentials_from_env(),
    }
    if system:
        payload["system_prompt"] = system
    if max_iterations:
        payload["max_iterations"] = max_iterations

    try:
        request = AgentRequest.model_validate(payload)
    except Exception as e:
        err_console.print(f"[red]Invalid request: {e}[/red]")
        raise typer.Exit(code=2) from e

    agent = Agent(config=cfg, streaming_callback=_print_event if stream else None)
    try:
        result = asyncio.run(agent.run(request))
    except KeyboardInterrupt:
        log.info("Interrupted")
        raise typer.Exit(code=130)

    if stream:
        console.print()
    if result.success:
        console.print(Panel(result.response, title=f"{model_config.model}", subtitle=f"{result.iterations} turns"))
    else:
        err_console.print(Panel(result.response, title="[red]Run failed[/red]", subtitle=result.error))

    if result.tool_calls:
        table = Table(title="Tool calls")
        table.add_column("Tool")
        table.add_column("Input")
        table.add_column("Output")
        for call in result.tool_calls:
            table.add_row(
                call["tool"],
                json.dumps(call["input"], default=str),
                str(call["output"])[:200],
            )
        console.print(table)

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def providers() -> None:
    """List registered model providers."""
    table = Table(title="Providers")
    table.add_column("Prefix")
    table.add_column("Credential")
    table.add_column("Streaming")
    for name in list_providers():
        spec = get_provider_spec(name)
        credential = spec.credential_type.value if spec.credential_type else "-"
        table.add_row(name, credential, "yes" if spec.supports_streaming else "no")
    console.print(table)


@app.command()
def check(
    model: str = typer.Argument(..., help="Model identifier to test"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
) -> None:
    """Check that the environment credential for a model works."""
    cfg = _load_config(config, verbose=False)
    agent = Agent(config=cfg)
    ok = asyncio.run(agent.test_credential(model, credentials_from_env()))
    if ok:
        console.print(f"[green]Credential OK for {model}[/green]")
        return
    err_console.print(f"[red]Credential check failed for {model}[/red]")
    raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"reasonloop v{__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    sys.exit(main())
