#!/usr/bin/env python3
"""Interactive chat CLI for testing the tool relay."""

import json

import click
import httpx
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

DONE = object()


def parse_sse_line(line: str) -> object | None:
    """Decode one SSE line into a text chunk, DONE, or None for non-data lines.

    Raises:
        RuntimeError: The server sent an error frame
    """
    if not line.startswith("data: "):
        return None

    payload = line[len("data: ") :]
    if payload == "[DONE]":
        return DONE

    event = json.loads(payload)
    if "error" in event:
        raise RuntimeError(event["error"])
    return event["delta"]["text"]


class ChatCLI:
    """Interactive chat interface for the tool relay."""

    def __init__(self, base_url: str = "http://localhost:3001"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.messages: list[dict] = []
        self.console = Console()
        self.client = httpx.Client(timeout=120.0)

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]🌦  Tool Relay - Interactive Chat[/bold blue]\n"
                "Type your messages to chat with the assistant.\n"
                "Commands: /help, /clear, /quit",
                border_style="blue",
            )
        )

        # Test connection
        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to tool relay[/green]\n")

        # Main chat loop
        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")

                if user_input.lower() in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif user_input.lower() == "/help":
                    self._show_help()
                    continue
                elif user_input.lower() == "/clear":
                    self.messages = []
                    self.console.print("[yellow]🔄 Conversation cleared[/yellow]")
                    continue
                elif user_input.strip() == "":
                    continue

                self.messages.append({"role": "user", "content": user_input})
                answer = self._stream_answer()
                if answer is None:
                    # Drop the unanswered turn so the history stays alternating
                    self.messages.pop()
                else:
                    self.messages.append({"role": "assistant", "content": answer})

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _stream_answer(self) -> str | None:
        """Send the conversation and print the answer as it streams in."""
        parts: list[str] = []
        try:
            with self.client.stream("POST", f"{self.base_url}/api/chat", json={"messages": self.messages}) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
                    return None

                self.console.print("[bold green]Assistant:[/bold green] ", end="")
                for line in response.iter_lines():
                    chunk = parse_sse_line(line)
                    if chunk is DONE:
                        break
                    if chunk is not None:
                        parts.append(chunk)
                        self.console.print(chunk, end="", markup=False, highlight=False)
                self.console.print()

        except RuntimeError as e:
            self.console.print(f"\n[red]❌ Stream error: {e}[/red]")
            return None
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return None

        return "".join(parts)

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /clear - Clear the conversation and start over
• /quit or /exit - Exit the chat

[bold]Example Questions:[/bold]
1. "Are there any weather alerts in CA?"
2. "What's the forecast for 40.7128, -74.0060?"
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


@click.command()
@click.argument("base_url", default="http://localhost:3001")
def main(base_url: str) -> None:
    """Main entry point for the chat CLI."""
    chat = ChatCLI(base_url)
    chat.start()


if __name__ == "__main__":
    main()
