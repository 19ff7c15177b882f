"""Tools the chat model can call, and the machinery that runs them."""

from __future__ import annotations

import httpx

from agentchat.config import Settings
from agentchat.tools.base import Tool, ToolContext, tool
from agentchat.tools.calculator import calculator
from agentchat.tools.documents import create_document, update_document
from agentchat.tools.executor import (
    InvalidToolTransition,
    ToolCallState,
    ToolExecutor,
    ToolInvocation,
)
from agentchat.tools.registry import ToolRegistry
from agentchat.tools.sandbox import SandboxFactory, make_run_python_tool
from agentchat.tools.visuals import create_chart, generate_color_palette, get_temperature
from agentchat.tools.web import make_create_logo_tool, make_read_page_tool


def build_tool_registry(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    sandbox_factory: SandboxFactory | None = None,
) -> ToolRegistry:
    """Every tool available to chat turns."""
    return ToolRegistry(
        [
            calculator,
            create_chart,
            generate_color_palette,
            get_temperature,
            create_document,
            update_document,
            make_read_page_tool(settings, transport),
            make_create_logo_tool(settings, transport),
            make_run_python_tool(settings, sandbox_factory),
        ]
    )


__all__ = [
    "InvalidToolTransition",
    "Tool",
    "ToolCallState",
    "ToolContext",
    "ToolExecutor",
    "ToolInvocation",
    "ToolRegistry",
    "build_tool_registry",
    "tool",
]
