"""Two-turn tool use with the non-streaming endpoint.

The first reply asks for ``get_weather``; the script answers with a
``ToolResult`` and prints the model's final reply.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from rich.console import Console
from rich.markdown import Markdown

from async_anthropic import (
    AnthropicError,
    AsyncAnthropicClient,
    Message,
    MessagesRequest,
    Tool,
    ToolChoice,
    ToolResult,
    load_config,
)

console = Console()

MODEL = "claude-3-5-sonnet-20241022"

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
    messages = [Message.user("What is the weather like in San Francisco?")]

    async with AsyncAnthropicClient(load_config()) as client:
        response = await client.create(MessagesRequest(
            model=MODEL,
            messages=messages,
            tools=[WEATHER_TOOL],
            tool_choice=ToolChoice.auto(),
        ))
        console.print("[bold]1. ---[/bold]")
        console.print(response)

        messages.append(response.to_message())
        for tool_use in response.tool_uses():
            console.print(f"[yellow]> {tool_use.name}[/yellow] [dim]{tool_use.input}[/dim]")
            location = tool_use.input.get("location", "somewhere")
            messages.append(Message.user([
                ToolResult(tool_use_id=tool_use.id, content=f"Pretty warm in {location}"),
            ]))

        response = await client.create(MessagesRequest(
            model=MODEL,
            messages=messages,
            tools=[WEATHER_TOOL],
        ))
        console.print("[bold]2. ---[/bold]")
        console.print(Markdown(response.text()))


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
