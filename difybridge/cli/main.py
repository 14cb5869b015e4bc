"""CLI entry point.

Provides the main CLI application with commands for:
- serve: Run the API server
- check: Send one chat completion through the bridge's Dify client
"""

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel

app = typer.Typer(
    name="difybridge",
    help="OpenAI-compatible chat completions backed by a Dify chat app",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


@app.command()
def serve(
    host: Annotated[
        str,
        typer.Option("--host", "-h", help="Host to bind to"),
    ] = "",
    port: Annotated[
        int,
        typer.Option("--port", "-p", help="Port to bind to"),
    ] = 0,
    reload: Annotated[
        bool,
        typer.Option("--reload", "-r", help="Enable auto-reload for development"),
    ] = False,
    workers: Annotated[
        int,
        typer.Option("--workers", "-w", help="Number of worker processes"),
    ] = 0,
) -> None:
    """Start the difybridge API server.

    Runs the FastAPI application with uvicorn.
    Defaults are loaded from settings (env vars / .env).
    """
    import uvicorn

    from difybridge.logging_config import configure_logging
    from difybridge.settings import get_settings

    settings = get_settings()
    configure_logging(settings.log_level)

    resolved_host = host or settings.host
    resolved_port = port or settings.port
    resolved_workers = workers or settings.workers_num

    console.print(
        Panel(
            f"[bold green]Starting difybridge[/bold green]\n"
            f"Host: {resolved_host}\n"
            f"Port: {resolved_port}\n"
            f"Workers: {resolved_workers}\n"
            f"Reload: {reload}\n"
            f"Dify: {settings.dify_base_url}",
            title="difybridge",
            border_style="green",
        )
    )

    uvicorn.run(
        "difybridge.api.main:get_app",
        factory=True,
        host=resolved_host,
        port=resolved_port,
        reload=reload,
        workers=resolved_workers if not reload else 1,
        log_level=settings.log_level.lower(),
    )


@app.command()
def check(
    message: Annotated[
        str,
        typer.Argument(help="Question to send to the Dify app"),
    ] = "ping",
) -> None:
    """Send one blocking chat message to Dify and print the answer.

    Useful to verify DIFY_BASE_URL and DIFY_API_KEY before serving.
    """
    from difybridge.exceptions import BridgeError

    try:
        answer = asyncio.run(_run_check(message))
    except BridgeError as e:
        console.print(f"[bold red]Dify check failed:[/bold red] {e}")
        raise typer.Exit(code=1) from e

    console.print(Panel(answer or "[dim](empty answer)[/dim]", title="Dify", border_style="blue"))


async def _run_check(message: str) -> str:
    from difybridge.api.routes.openai_compat.schemas import ChatCompletionRequest, ChatMessage
    from difybridge.api.routes.openai_compat.utils import build_chat_messages_request
    from difybridge.dify import DifyClient
    from difybridge.settings import get_settings

    settings = get_settings()
    client = DifyClient(
        base_url=settings.dify_base_url,
        api_key=settings.dify_api_key.get_secret_value(),
        timeout=settings.dify_timeout,
    )
    request = ChatCompletionRequest(
        model="difybridge-check",
        messages=[ChatMessage(role="user", content=message)],
    )
    try:
        resp = await client.send(
            build_chat_messages_request(request, default_user=settings.default_user)
        )
    finally:
        await client.close()
    return resp.answer


if __name__ == "__main__":
    app()
