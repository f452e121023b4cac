"""
CLI entry point for screenrelay.
"""

import asyncio
import base64
import os
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

try:
    from importlib.metadata import version as pkg_version

    _version = pkg_version("screenrelay")
except Exception:
    _version = "0.1.0"

from screenrelay.core.config import KNOWN_KEYS, ConfigManager
from screenrelay.core.settings import ENV_PREFIX, RelaySettings, SettingsStore
from screenrelay.models.session import Provider

console = Console()
console_err = Console(stderr=True)


# =============================================================================
# Root CLI Group
# =============================================================================


@click.group()
@click.version_option(version=_version, prog_name="screenrelay")
@click.option("--debug", is_flag=True, hidden=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, debug: bool):
    """
    screenrelay - route a desktop assistant's screen, audio and text to AI providers.

    \b
        screenrelay keys set          # Store a provider API key
        screenrelay settings show     # Show provider, models and timeouts
        screenrelay chat              # Talk to the selected provider
        screenrelay serve             # Run the local relay server
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    if debug:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="[%(levelname)s] %(name)s: %(message)s")
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)


# =============================================================================
# API Keys
# =============================================================================


@cli.group()
def keys():
    """Manage provider API keys."""
    pass


@keys.command("set")
@click.argument("key_name", required=False)
@click.option(
    "--value",
    "-v",
    help="Set value directly (use with caution - visible in shell history)",
)
def keys_set(key_name: str | None, value: str | None):
    """
    Set an API key.

    If KEY_NAME is not provided, asks which provider key to set.

    \b
    Examples:
        screenrelay keys set                     # Choose a provider key
        screenrelay keys set OPENROUTER_API_KEY  # Set specific key
    """
    config_mgr = ConfigManager()

    if value:
        if not key_name:
            console.print("[red]Error:[/red] KEY_NAME required when using --value")
            sys.exit(1)
        config_mgr.set(key_name, value)
    else:
        if not key_name:
            key_name = click.prompt("Key", type=click.Choice(list(KNOWN_KEYS)))
        if not config_mgr.prompt_and_set(key_name):
            console.print("[dim]Cancelled[/dim]")
            return
    console.print(f"[green]✓[/green] Saved {key_name}")


@keys.command("list")
def keys_list():
    """List configured API keys (values are never shown)."""
    ConfigManager().show_status()


@keys.command("delete")
@click.argument("key_name")
def keys_delete(key_name: str):
    """Delete a stored API key."""
    if ConfigManager().delete(key_name):
        console.print(f"[green]✓[/green] Deleted {key_name}")
    else:
        console.print(f"[yellow]Key not found:[/yellow] {key_name}")


# =============================================================================
# Settings
# =============================================================================


@cli.group("settings")
def settings_group():
    """Show or change relay settings."""
    pass


@settings_group.command("show")
def settings_show():
    """Show the effective settings (file values plus environment overrides)."""
    settings = SettingsStore().load()

    table = Table(title="Settings")
    table.add_column("Name", style="cyan")
    table.add_column("Value")
    table.add_column("Source", style="dim")

    for name, value in settings.model_dump(mode="json").items():
        source = "env" if f"{ENV_PREFIX}{name.upper()}" in os.environ else ""
        table.add_row(name, str(value), source)

    console.print(table)


@settings_group.command("set")
@click.argument("name")
@click.argument("value")
def settings_set(name: str, value: str):
    """
    Change one setting.

    \b
    Examples:
        screenrelay settings set provider openrouter
        screenrelay settings set chat_model openai/gpt-4o
    """
    store = SettingsStore()
    try:
        settings = store.set(name, value)
    except ValueError as e:
        console_err.print(f"[red]Error:[/red] {e}")
        console_err.print(f"[dim]Known settings: {', '.join(RelaySettings.model_fields)}[/dim]")
        sys.exit(1)
    console.print(f"[green]✓[/green] {name} = {getattr(settings, name)}")


# =============================================================================
# Server
# =============================================================================


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address")
@click.option("--port", "-p", default=8765, show_default=True, type=int, help="Port")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int):
    """Run the local relay server (POST /ipc/{channel}, GET /events)."""
    import uvicorn

    from screenrelay.bridge import build_bridge
    from screenrelay.server.app import create_app

    app = create_app(build_bridge())
    console.print(
        Panel(
            f"[bold]screenrelay[/bold] listening on http://{host}:{port}\n"
            f"Provider: [cyan]{SettingsStore().current_provider().display_name}[/cyan]",
            border_style="blue",
        )
    )
    uvicorn.run(app, host=host, port=port, log_level="debug" if ctx.obj.get("debug") else "info")


# =============================================================================
# Interactive chat
# =============================================================================


CHAT_HELP = """\
[bold]Commands[/bold]
  /image PATH      send a JPEG screenshot
  /new             start a new conversation
  /history         show this conversation
  /export [json]   print the conversation as markdown or JSON
  /quit            close the session and exit"""


def _print_result(result: dict) -> None:
    if result.get("success"):
        reply = result.get("data")
        if reply:
            console.print(Markdown(str(reply)))
    else:
        console.print(f"[red]Error:[/red] {result.get('error')}")


async def _chat_loop(bridge, api_key: str, model: str | None, profile: str, prompt: str, language: str) -> None:
    with console.status("[cyan]Connecting...[/cyan]"):
        result = await bridge.initialize_model(
            api_key, custom_prompt=prompt, profile=profile, language=language, model_id=model
        )
    if not result.get("success"):
        console.print(f"[red]Error:[/red] {result.get('error')}")
        return

    data = result.get("data") or {}
    console.print(
        f"[green]✓[/green] Connected to [cyan]{data.get('model')}[/cyan] "
        f"[dim](conversation {data.get('sessionId')})[/dim]"
    )
    console.print(CHAT_HELP)

    try:
        while True:
            try:
                line = (await asyncio.to_thread(console.input, "\n[bold blue]You:[/bold blue] ")).strip()
            except (EOFError, KeyboardInterrupt):
                break
            if not line:
                continue

            if line in ("/quit", "/exit"):
                break
            if line == "/new":
                new = await bridge.start_new_session()
                console.print(f"[dim]New conversation {new['data']['sessionId']}[/dim]")
                continue
            if line == "/history":
                current = await bridge.get_current_session()
                for turn in current["data"]["history"]:
                    console.print(f"[bold]You:[/bold] {turn['inputSummary']}")
                    console.print(f"[bold]AI:[/bold] {turn['responseText']}\n")
                continue
            if line.startswith("/export"):
                fmt = "json" if line.endswith("json") else "markdown"
                console.print(bridge.export_conversation(fmt))
                continue
            if line.startswith("/image"):
                path = Path(line[len("/image"):].strip()).expanduser()
                if not path.is_file():
                    console.print(f"[red]Error:[/red] No such file: {path}")
                    continue
                payload = {"data": base64.b64encode(path.read_bytes()).decode()}
                with console.status("[cyan]Thinking...[/cyan]"):
                    _print_result(await bridge.send_image_content(payload))
                continue

            with console.status("[cyan]Thinking...[/cyan]"):
                _print_result(await bridge.send_text_message(line))
    finally:
        await bridge.aclose()


@cli.command()
@click.option("--provider", "provider_name", default=None, help="Override the configured provider")
@click.option("--model", "-m", default=None, help="Model id (defaults to the provider's configured model)")
@click.option("--profile", default="interview", show_default=True, help="Prompt profile")
@click.option("--prompt", default="", help="Extra context appended to the system prompt")
@click.option("--language", default="en-US", show_default=True)
def chat(provider_name: str | None, model: str | None, profile: str, prompt: str, language: str):
    """
    Chat with the selected provider from the terminal.

    \b
    Examples:
        screenrelay chat
        screenrelay chat --provider openrouter -m openai/gpt-4o
    """
    from screenrelay.bridge import build_bridge
    from screenrelay.core.config import PROVIDER_KEYS

    environ = dict(os.environ)
    if provider_name:
        try:
            environ[f"{ENV_PREFIX}PROVIDER"] = Provider.parse(provider_name).value
        except ValueError as e:
            console_err.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

    store = SettingsStore(environ=environ)
    provider = store.current_provider()
    api_key = ConfigManager().api_key_for(provider)
    if not api_key:
        console_err.print(
            f"[red]Error:[/red] No API key for {provider.display_name}. "
            f"Run [cyan]screenrelay keys set {PROVIDER_KEYS[provider]}[/cyan]"
        )
        sys.exit(1)

    bridge = build_bridge(store)
    asyncio.run(_chat_loop(bridge, api_key, model, profile, prompt, language))


if __name__ == "__main__":
    cli()
