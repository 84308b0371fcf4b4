"""Command-line entry point: run the proxy or chat through it."""

from __future__ import annotations

import argparse
from typing import List, Optional

from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from . import config
from .app import main as serve_main
from .config import ProxyConfig
from .console import THEME, console
from .logging import configure_logging, get_logger
from .settings import SettingsStorage
from .store import ChatStore

LOGGER = get_logger(__name__)

NOTICE_STYLES = {"error": "error", "success": "success", "info": "info"}

HELP_TEXT = (
    "/settings  change API key, base URL and model\n"
    "/models    list models from the configured endpoint\n"
    "/model ID  select a model for the next request\n"
    "/system    set a system prompt (empty to clear)\n"
    "/clear     clear the conversation\n"
    "/quit      exit"
)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chat-relay",
        description="Local SSE proxy for OpenAI-compatible chat completions, with a terminal client.",
    )
    parser.add_argument("--log-level", help="Logging level (default: CHAT_RELAY_LOG_LEVEL or INFO).")
    parser.add_argument("--env-file", help="Path to a .env file (default: .env).")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the local proxy server.")
    serve.add_argument("--host", help="Interface to bind (default: CHAT_RELAY_HOST or 127.0.0.1).")
    serve.add_argument("--port", type=int, help="Port to listen on (default: PORT or 5000).")
    serve.add_argument("--debug", action="store_true", help="Enable the Flask debugger.")

    chat = sub.add_parser("chat", help="Chat in the terminal through a running proxy.")
    chat.add_argument("--proxy-url", help="Proxy address (default: CHAT_RELAY_PROXY_URL).")
    chat.add_argument("--settings-file", help="Where settings are stored.")
    chat.add_argument("--model", help="Select a model before the first message.")
    chat.add_argument("--system", default="", help="System prompt prepended to every request.")
    chat.add_argument("--temperature", type=float)
    chat.add_argument("--max-tokens", type=int)
    chat.add_argument("--top-p", type=float)
    return parser.parse_args(argv)


class ChatView:
    """Renders store updates: streamed tokens as they arrive, then notices."""

    def __init__(self, console_override=None) -> None:
        self.console = console_override or console
        if console_override is not None:
            # the style names below come from the shared theme
            self.console.push_theme(THEME)
        self._printed = 0
        self._notices_seen = 0

    def start_reply(self) -> None:
        self._printed = 0

    def __call__(self, store: ChatStore) -> None:
        for notice in store.notices[self._notices_seen :]:
            style = NOTICE_STYLES.get(notice.level, "info")
            self.console.print(f"\n{notice.message}", style=style, markup=False)
        self._notices_seen = len(store.notices)

        if not store.messages:
            return
        last = store.messages[-1]
        if last.role != "assistant" or not store.is_generating:
            return
        if len(last.content) > self._printed:
            self.console.print(last.content[self._printed :], end="", style="assistant", markup=False)
            self._printed = len(last.content)


def _print_models(store: ChatStore) -> None:
    models = store.refresh_models()
    if not models:
        console.print("No models available.", style="warning")
        return
    table = Table(title="Models", show_lines=False)
    table.add_column("ID", style="cyan")
    table.add_column("Owner")
    for model in models:
        marker = " *" if model.id == store.settings.model else ""
        table.add_row(model.id + marker, model.owned_by or "")
    console.print(table)


def _edit_settings(store: ChatStore) -> None:
    current = store.settings
    api_key = Prompt.ask("API key", password=True, default=current.api_key or None, show_default=False)
    base_url = Prompt.ask("Base URL", default=current.base_url)
    model = Prompt.ask("Model", default=current.model)
    store.update_config(api_key=api_key, base_url=base_url, model=model)


def _handle_command(store: ChatStore, line: str) -> bool:
    """Run a slash command. Returns False when the REPL should exit."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()
    if command in ("/quit", "/exit"):
        return False
    if command == "/settings":
        _edit_settings(store)
    elif command == "/models":
        _print_models(store)
    elif command == "/model":
        if not argument:
            console.print(f"Current model: {store.settings.model}", style="info")
        else:
            store.select_model(argument)
    elif command == "/system":
        store.system_prompt = argument
        console.print("System prompt cleared." if not argument else "System prompt set.", style="info")
    elif command == "/clear":
        store.clear_messages()
        console.print("Conversation cleared.", style="info")
    else:
        console.print(Panel(HELP_TEXT, title="Commands", expand=False))
    return True


def run_chat(args: argparse.Namespace) -> int:
    storage = SettingsStorage(args.settings_file) if args.settings_file else SettingsStorage()
    store = ChatStore(storage=storage, proxy_url=args.proxy_url or config.proxy_url())
    if args.system:
        store.system_prompt = args.system
    if args.temperature is not None:
        store.sampling.temperature = args.temperature
    if args.max_tokens is not None:
        store.sampling.max_tokens = args.max_tokens
    if args.top_p is not None:
        store.sampling.top_p = args.top_p

    view = ChatView()
    store.subscribe(view)
    if args.model:
        store.select_model(args.model)
    elif store.settings.api_key:
        store.refresh_models()

    console.print(
        Panel(
            f"Model: [bold]{store.settings.model}[/bold]\nEndpoint: {store.settings.base_url}\n"
            "Type /help for commands.",
            title="chat-relay",
            expand=False,
        )
    )

    while True:
        try:
            line = Prompt.ask("[prompt]You[/prompt]")
        except (EOFError, KeyboardInterrupt):
            console.print()
            return 0
        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            if not _handle_command(store, line):
                return 0
            continue

        view.start_reply()
        console.print("Assistant: ", style="prompt", end="")
        try:
            store.send_message(line)
        except KeyboardInterrupt:
            LOGGER.debug("Reply interrupted by user")
            console.print("\n[stopped]", style="warning", markup=False)
            continue
        console.print()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config.load_env_once(args.env_file)
    configure_logging(args.log_level or config.log_level())

    if args.command == "serve":
        proxy_config = ProxyConfig.from_env()
        if args.host:
            proxy_config.host = args.host
        if args.port:
            proxy_config.port = args.port
        if args.debug:
            proxy_config.debug = True
        serve_main(proxy_config)
        return 0
    return run_chat(args)


if __name__ == "__main__":
    raise SystemExit(main())
