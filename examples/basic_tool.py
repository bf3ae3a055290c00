from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from yagi import CancelToken, ChatOptions, Engine, EngineConfig, create_client, user_message

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

WEATHER_SCHEMA: dict[str, object] = {
    "type": "object",
    "properties": {
        "location": {
            "type": "string",
            "description": "City and state, e.g. San Francisco, CA",
        },
        "unit": {
            "type": "string",
            "enum": ["celsius", "fahrenheit"],
        },
    },
    "required": ["location"],
}


async def get_weather(arguments: str, token: CancelToken) -> str:
    """Stub implementation of get_weather."""
    args = json.loads(arguments)
    # imagine we call a real weather API here
    return f"15 °C, mostly cloudy in {args['location']}"


async def tool_roundtrip(provider: str, model: str) -> None:
    """
    Let the engine drive a tool-calling conversation:

    1) Send user prompt
    2) Model emits a get_weather call; the engine runs it
    3) Model answers using the tool result
    """
    engine = Engine(EngineConfig(client=create_client(provider), model=model))
    engine.register_tool(
        "get_weather", "Get the current weather in a given location", WEATHER_SCHEMA, get_weather, safe=True
    )

    options = ChatOptions(
        on_content=lambda text: print(text, end="", flush=True),
        on_tool_call=lambda name, args: logger.info("Calling %s(%s)", name, args),
    )
    result = await engine.chat([user_message("What's the weather in San Francisco?")], options)
    print()
    logger.info("Conversation has %d messages", len(result.messages))


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--provider", default="openai")
    parser.add_argument("--model", default="gpt-4.1-mini")
    args = parser.parse_args()

    try:
        asyncio.run(tool_roundtrip(args.provider, args.model))
    except KeyboardInterrupt:
        sys.exit(130)
