from __future__ import annotations

from typing import Any

from dealdesk.agent.providers.base import ToolSpec
from dealdesk.agent.tool_registry import ToolDef
from dealdesk.context import ToolContext

FORECAST = "The weather is 67 degrees and sunny."


async def check_the_weather(tool_input: dict[str, Any], context: ToolContext) -> str:
    return FORECAST


def build_weather_tools() -> list[ToolDef]:
    return [
        ToolDef(
            spec=ToolSpec(
                name="check_the_weather",
                description="Check the weather for a specific zip code.",
                input_schema={
                    "type": "object",
                    "properties": {
                        "zip": {"type": "string", "description": "The zip code to check the weather for."},
                    },
                    "required": ["zip"],
                },
            ),
            executor=check_the_weather,
        ),
    ]
