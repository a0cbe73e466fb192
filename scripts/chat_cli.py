#!/usr/bin/env python3
"""Interactive CLI for sending instructions to the bridge's HTTP API.

Usage: chat_cli.py [BASE_URL] [API_KEY]
"""

import json
import os
import sys

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

EXAMPLES = (
    "create a channel called launch-prep",
    "create a channel called launch-prep and invite U123, U456",
    "find the marketing channel and post the meeting summary there",
)


class BridgeSession:
    """One CLI session against ``/api/process-message``; tracks the sessionId between turns."""

    def __init__(self, base_url: str = "http://localhost:8000", api_key: str | None = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or os.getenv("API_KEY", "")
        self.session_id: str | None = None
        self.console = Console()
        self.http = httpx.Client(base_url=self.base_url, timeout=120.0)
        self.commands = {
            "/help": self.print_help,
            "/clear": self.reset,
            "/session": self.print_session,
        }

    def run(self) -> None:
        self.console.rule("[bold blue]Slack AI Bridge[/bold blue]")
        self.console.print(f"Target: {self.base_url}   Type /help for commands.")

        if not self.api_key:
            self.console.print("[red]API_KEY is not set. Export it or pass it as the second argument.[/red]")
            return
        if not self.is_healthy():
            self.console.print(f"[red]No healthy bridge at {self.base_url}.[/red]")
            return

        try:
            self.loop()
        except (KeyboardInterrupt, EOFError):
            pass
        finally:
            self.http.close()
            self.console.print("\n[yellow]Bye.[/yellow]")

    def loop(self) -> None:
        while (line := Prompt.ask("\n[bold cyan]>[/bold cyan]").strip()) not in ("/quit", "/exit"):
            if not line:
                continue
            handler = self.commands.get(line.lower())
            if handler is not None:
                handler()
                continue
            body = self.ask(line)
            if body is not None:
                self.render(body)

    def is_healthy(self) -> bool:
        try:
            return self.http.get("/health").is_success
        except httpx.HTTPError:
            return False

    def ask(self, message: str) -> dict | None:
        """POST one instruction; returns the decoded body, or None after printing the error."""
        payload = {"message": message, "sessionId": self.session_id} if self.session_id else {"message": message}
        try:
            with self.console.status("[dim]Working...[/dim]"):
                reply = self.http.post("/api/process-message", json=payload, headers={"X-API-Key": self.api_key})
            body = reply.json()
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            self.console.print(f"[red]Request failed: {e}[/red]")
            return None

        if not reply.is_success:
            error = body.get("error", {})
            self.console.print(f"[red]{reply.status_code} {error.get('code')}: {error.get('message')}[/red]")
            return None

        self.session_id = body.get("sessionId")
        return body

    def render(self, body: dict) -> None:
        meta = body.get("metadata", {})
        self.console.print(
            Panel(
                body.get("response") or "(no reply)",
                title="bridge",
                subtitle=f"{meta.get('model', '?')} · {meta.get('processingTime', '?')}",
                border_style="green",
            )
        )

        results = body.get("results") or []
        if not results:
            return
        table = Table("Function", "OK", "Result", title="Function results", show_lines=True)
        for item in results:
            result = item["result"]
            table.add_row(
                item["functionName"],
                "[green]yes[/green]" if result.get("success") else "[red]no[/red]",
                json.dumps(result, indent=2),
            )
        self.console.print(table)

    def reset(self) -> None:
        self.session_id = None
        self.console.print("[yellow]Started a new session.[/yellow]")

    def print_session(self) -> None:
        self.console.print(self.session_id or "[dim]no session yet[/dim]")

    def print_help(self) -> None:
        table = Table("Command", "Effect", box=None)
        table.add_row("/help", "show this table")
        table.add_row("/clear", "drop the session id so the next message starts fresh")
        table.add_row("/session", "print the current session id")
        table.add_row("/quit, /exit", "leave")
        self.console.print(table)
        self.console.print("\n[bold]Try:[/bold]")
        for example in EXAMPLES:
            self.console.print(f"  {example}")


def main() -> None:
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    api_key = sys.argv[2] if len(sys.argv) > 2 else None
    BridgeSession(base_url, api_key).run()


if __name__ == "__main__":
    main()
