"""Tool abstraction and registry.

Tools expose an Ollama-compatible function schema and a uniform async
`execute(args)` entry point. The registry never raises from `execute`: unknown
tools and tool exceptions both come back as a failed ToolExecutionResult so
the model can react to them in the next round trip.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from .models import ToolExecutionResult


class BaseTool(ABC):
    """Base class for tools callable by the model.

    Subclasses set `name`, `description` and a JSON-schema `parameters`
    object, and implement `execute`.
    """

    name: str
    description: str
    parameters: Dict[str, Any]

    @abstractmethod
    async def execute(self, args: Dict[str, Any]) -> ToolExecutionResult:
        """Run the tool with already-parsed arguments."""

    def get_definition(self) -> Dict[str, Any]:
        """Function-calling schema passed to the chat endpoint."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def validate_args(self, args: Dict[str, Any]) -> str | None:
        """Return an error message for the first missing required parameter, else None."""
        for required in self.parameters.get("required", []):
            if args.get(required) is None:
                return f"Missing required parameter: {required}"
        return None


class ToolRegistry:
    """Holds the tools offered to the model, keyed by name."""

    def __init__(self) -> None:
        self._tools: Dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            logging.warning('Tool "%s" is already registered. Overwriting.', tool.name)
        self._tools[tool.name] = tool
        logging.debug("Registered tool: %s", tool.name)

    def unregister(self, tool_name: str) -> bool:
        removed = self._tools.pop(tool_name, None) is not None
        if removed:
            logging.debug("Unregistered tool: %s", tool_name)
        return removed

    def get_tool(self, tool_name: str) -> BaseTool | None:
        return self._tools.get(tool_name)

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def tool_names(self) -> List[str]:
        return list(self._tools)

    def get_tool_definitions(self) -> List[Dict[str, Any]]:
        return [tool.get_definition() for tool in self._tools.values()]

    async def execute(self, tool_name: str, args: Dict[str, Any]) -> ToolExecutionResult:
        """Execute a tool by name.

        Args:
            tool_name: Registered tool name
            args: Parsed arguments

        Returns:
            The tool's result, or a failed result when the tool is unknown or raised
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            logging.warning("Model requested unknown tool: %s", tool_name)
            return ToolExecutionResult(success=False, error=f'Tool "{tool_name}" not found in registry')

        logging.info("Executing tool: %s %s", tool_name, args)
        try:
            result = await tool.execute(args)
        except Exception as exc:
            logging.error("Tool '%s' raised: %s", tool_name, exc, exc_info=True)
            return ToolExecutionResult(success=False, error=str(exc) or "Unknown error during tool execution")
        logging.debug("Tool '%s' finished (success=%s)", tool_name, result.success)
        return result

    def clear(self) -> None:
        self._tools.clear()

    def __len__(self) -> int:
        return len(self._tools)


__all__ = ["BaseTool", "ToolRegistry"]
