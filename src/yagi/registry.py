"""Tool registry: name -> handler, declaration and trust flag."""

from __future__ import annotations

from typing import Any, Iterator, Optional, Union

from yagi.adapters import OpenAIRequestAdapter
from yagi.types import ToolHandler, ToolRegistration

__all__ = ["ToolRegistry", "TOOL_ALTERNATIVES"]

# Tools that overlap in capability, offered to the model when a tool fails.
TOOL_ALTERNATIVES: dict[str, list[str]] = {
    "web_search": ["fetch_url"],
    "fetch_url": ["web_search"],
    "read_file": ["list_files", "glob", "search_files"],
    "edit_file": ["write_file", "read_file"],
    "write_file": ["edit_file"],
    "delete_file": ["list_files"],
    "list_files": ["glob", "search_files"],
    "glob": ["list_files", "search_files"],
    "search_files": ["glob", "read_file"],
    "run_command": ["read_file", "write_file"],
}


class ToolRegistry:
    """Registers tool handlers and their JSON-schema declarations.

    Names are unique; registering an existing name replaces the old entry
    and keeps its position in ``definitions()``.
    """

    def __init__(self, alternatives: Optional[dict[str, list[str]]] = None) -> None:
        self._tools: dict[str, ToolRegistration] = {}
        self._alternatives = TOOL_ALTERNATIVES if alternatives is None else alternatives
        self._adapter = OpenAIRequestAdapter()

    def register(
        self,
        name: str,
        description: str,
        parameters: Union[dict[str, Any], str],
        handler: ToolHandler,
        safe: bool = False,
    ) -> None:
        """Register (or replace) a tool."""
        self._tools[name] = ToolRegistration(
            name=name,
            description=description,
            parameters=parameters,
            handler=handler,
            safe=safe,
        )

    def get(self, name: str) -> Optional[ToolRegistration]:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolRegistration]:
        return iter(self._tools.values())

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        """Return all tool declarations in chat-completions format."""
        return [self._adapter.tool_definition(reg) for reg in self._tools.values()]

    def alternatives(self, name: str) -> list[str]:
        """Registered tools listed as alternatives for ``name``."""
        return [alt for alt in self._alternatives.get(name, ()) if alt in self._tools]
