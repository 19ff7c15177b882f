"""Name → tool lookup and per-request tool selection."""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger
from pydantic_ai.tools import ToolDefinition

from agentchat.tools.base import Tool


class ToolRegistry:
    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for t in tools:
            self.register(t)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name!r} is already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def select(self, names: Iterable[str] | None) -> ToolRegistry:
        """Registry restricted to *names*; ``None`` keeps every tool."""
        if names is None:
            return self
        selected = []
        for name in dict.fromkeys(names):
            t = self._tools.get(name)
            if t is None:
                logger.warning("Ignoring unknown tool {!r} in selection", name)
                continue
            selected.append(t)
        return ToolRegistry(selected)

    def definitions(self) -> list[ToolDefinition]:
        return [t.definition() for t in self._tools.values()]
