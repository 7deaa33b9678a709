"""Stream a tool-using reply and render each update as it arrives.

Requires ``ANTHROPIC_API_KEY`` and the ``examples`` extra (``rich``).
"""

from __future__ import annotations

import asyncio
import logging
import sys

from rich.console import Console
from rich.panel import Panel

from async_anthropic import (
    AnthropicError,
    AsyncAnthropicClient,
    Message,
    MessagesRequest,
    Tool,
    load_config,
)
from async_anthropic.streaming import (
    BlockFinished,
    MessageFinished,
    MessageUpdated,
    TextUpdate,
    ToolInputUpdate,
)

console = Console()

WEATHER_TOOL = Tool(
    name="get_weather",
    description="Get the current weather in a given location",
    input_schema={
        "type": "object",
        "properties": {
            "location": {
                "type": "string",
                "description": "The city and state, e.g. San Francisco, CA",
            },
        },
        "required": ["location"],
    },
)


async def run() -> None:
    request = MessagesRequest(
        model="claude-3-5-sonnet-20241022",
        messages=[Message.user("What is the weather like in San Francisco?")],
        tools=[WEATHER_TOOL],
    )

    async with AsyncAnthropicClient(load_config()) as client:
        async with client.stream(request) as stream:
            async for update in stream:
                if isinstance(update, TextUpdate):
                    console.print(update.text, end="", highlight=False)
                elif isinstance(update, ToolInputUpdate):
                    console.print(f"[dim]{update.partial_json}[/dim]", end="")
                elif isinstance(update, BlockFinished):
                    console.print()
                elif isinstance(update, MessageUpdated):
                    console.print(f"[dim]stop_reason={update.stop_reason}[/dim]")
                elif isinstance(update, MessageFinished):
                    for tool_use in update.message.tool_uses():
                        console.print(Panel(
                            str(tool_use.input),
                            title=f"[yellow]> {tool_use.name}[/yellow]",
                            border_style="dim",
                            expand=False,
                        ))


def main() -> None:
    verbose = "-v" in sys.argv[1:]
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)
    try:
        asyncio.run(run())
    except AnthropicError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
