"""CLI entry point and commands.

Provides the main CLI application with commands for:
- send: Send one message and print the whole response
- stream: Stream a response and print frames as they arrive
- check-config: Resolve the target URL and headers without sending anything
"""

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ndc_client.client import ClientOptions, NDCClient
from ndc_client.exceptions import NDCError
from ndc_client.logging_config import configure_logging
from ndc_client.message import NDCMessage
from ndc_client.settings import get_settings

app = typer.Typer(
    name="ndc",
    help="Client for NDC endpoints with multi-message streaming responses",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

MethodArgument = Annotated[str, typer.Argument(help="NDC method, e.g. AirShoppingRQ")]
BodyArgument = Annotated[
    Path,
    typer.Argument(exists=True, dir_okay=False, readable=True, help="File holding the request body"),
]
ConfigOption = Annotated[
    Optional[str],  # noqa: UP007
    typer.Option("--config", "-c", help="YAML protocol config (default: NDC_CONFIG_PATH)"),
]
EnvOption = Annotated[
    Optional[str],  # noqa: UP007
    typer.Option("--env", "-e", help="Environment selecting server.url_<env> (default: NDC_ENVIRONMENT)"),
]
HeaderOption = Annotated[
    Optional[list[str]],  # noqa: UP007
    typer.Option("--header", "-H", help="Override header as NAME=VALUE (repeatable)"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Log requests and responses at DEBUG level"),
]


def _parse_headers(values: list[str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Expected NAME=VALUE, got {item!r}", param_hint="--header")
        headers[name.strip()] = value.strip()
    return headers


def _build_client(config: str | None, env: str | None, headers: list[str] | None) -> NDCClient:
    settings = get_settings()
    options = ClientOptions(
        config_path=config or settings.config_path,
        environment=env or settings.environment,
        headers=_parse_headers(headers),
        timeout=settings.timeout,
        connect_timeout=settings.connect_timeout,
        delimiter=settings.delimiter,
        max_callback_concurrency=settings.max_callback_concurrency,
    )
    return NDCClient(options)


def _fail(error: Exception) -> typer.Exit:
    console.print(f"[red]❌ {type(error).__name__}: {escape(str(error))}[/red]")
    return typer.Exit(code=1)


@app.command()
def send(
    method: MethodArgument,
    body_file: BodyArgument,
    config: ConfigOption = None,
    env: EnvOption = None,
    header: HeaderOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Send one message and print the whole response.

    Examples:
        ndc send OrderRetrieveRQ order.xml --env test
        ndc send AirShoppingRQ shop.xml -H "Authorization-Key=abc"
    """
    configure_logging("DEBUG" if verbose else None)
    try:
        client = _build_client(config, env, header)
        message = NDCMessage(method, body_file.read_text(encoding="utf-8"))
        result = asyncio.run(_send(client, message))
    except NDCError as e:
        raise _fail(e) from e

    table = Table(title=f"{method} → HTTP {result.status_code}", show_header=True)
    table.add_column("Header", style="cyan")
    table.add_column("Value")
    for name, value in result.headers.multi_items():
        table.add_row(name, value)
    console.print(table)
    console.print(Text(result.text))


async def _send(client: NDCClient, message: NDCMessage):
    async with client:
        return await client.request_sync(message)


@app.command()
def stream(
    method: MethodArgument,
    body_file: BodyArgument,
    config: ConfigOption = None,
    env: EnvOption = None,
    header: HeaderOption = None,
    timeout: Annotated[
        Optional[float],  # noqa: UP007
        typer.Option("--timeout", "-t", help="Cancel the session after this many seconds"),
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """Stream a response, printing each message as soon as it is complete.

    Examples:
        ndc stream AirShoppingRQ shop.xml --env test
        ndc stream AirShoppingRQ shop.xml --timeout 20
    """
    configure_logging("DEBUG" if verbose else None)
    try:
        client = _build_client(config, env, header)
        message = NDCMessage(method, body_file.read_text(encoding="utf-8"))
        count, cancelled = asyncio.run(_stream(client, message, timeout))
    except NDCError as e:
        raise _fail(e) from e

    suffix = " (cancelled by timeout)" if cancelled else ""
    console.print(f"[bold green]✓ {count} message(s) received{suffix}[/bold green]")


async def _stream(client: NDCClient, message: NDCMessage, timeout: float | None) -> tuple[int, bool]:
    cancel = asyncio.Event()
    timer = asyncio.get_running_loop().call_later(timeout, cancel.set) if timeout else None
    count = 0
    try:
        async with client:
            response, channel = await client.stream_cancellable(message, cancel)
            console.print(f"[dim]HTTP {response.status_code}[/dim]")
            async for frame in channel:
                count += 1
                console.print(
                    Panel(
                        Text(frame.decode("utf-8", errors="replace")),
                        title=f"Message {count}",
                        border_style="blue",
                    )
                )
    finally:
        if timer is not None:
            timer.cancel()
    return count, cancel.is_set()


@app.command("check-config")
def check_config(
    method: Annotated[
        str,
        typer.Option("--method", "-m", help="Method used to render {{request_name}}"),
    ] = "AirShoppingRQ",
    config: ConfigOption = None,
    env: EnvOption = None,
    header: HeaderOption = None,
) -> None:
    """Resolve the target URL and headers for a method without sending anything."""
    try:
        client = _build_client(config, env, header)
        request = asyncio.run(_build_request(client, NDCMessage(method)))
    except NDCError as e:
        raise _fail(e) from e

    table = Table(title=f"{method} ({client.options.environment})", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("URL", str(request.url))
    for name, value in request.headers.multi_items():
        if name.lower() == "content-length":
            continue
        table.add_row(name, value)
    console.print(table)


async def _build_request(client: NDCClient, message: NDCMessage):
    async with client:
        return client.build_request(message)


if __name__ == "__main__":
    app()
