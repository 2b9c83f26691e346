# toolbox.py
# Tool registry — name → service.
#
# The agent never calls tool functions directly: it asks the Toolbox to
# describe what is available and to invoke a tool by name. An unknown name is
# an outcome, not an exception, so a confused model cannot crash the loop.

import re
from typing import Any, Iterator, Protocol

import yaml

from agent_toolbox.description import ToolDescription
from agent_toolbox.handler import Err, Ok, Outcome


class ToolNotFoundError(Exception):
    """The requested tool is absent from the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool '{name}' is not in the registry.")


class ToolUseError(Exception):
    """Model text asked for a tool but could not be read as a tool call."""


class Tool(Protocol):
    @property
    def description(self) -> ToolDescription: ...

    async def call(self, request: str) -> str: ...


TOOLS_PROMPT = """\
Assistant can ask the user to use tools to look up information that may be \
helpful in answering the users original question. You may only communicate \
that with YAML. You are provided with tools that you may ask the user to use \
by naming the tool you wish to invoke along with it's input.

For the user to invoke a tool write YAML like this, do not include output:
command: Command
input:
  <INPUT IN YAML>


The following are the user's tools:
"""

_YAML_BLOCK = re.compile(r"```(?:yaml|yml)?\s*\n(.*?)```", re.DOTALL | re.IGNORECASE)


class Toolbox:
    """
    Ordered collection of named tools.

    Build it fully, then share it: lookups are read-only and safe from any
    task or thread, registration after publication is not supported.
    """

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.add_tool(tool)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_tool(self, tool: Tool) -> None:
        name = tool.description.name
        if name in self._tools:
            raise ValueError(f"A tool named '{name}' is already registered.")
        self._tools[name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    # ------------------------------------------------------------------
    # Description
    # ------------------------------------------------------------------

    def descriptions(self) -> list[ToolDescription]:
        return [tool.description for tool in self._tools.values()]

    def describe(self) -> str:
        """YAML list of every tool's name and input/output Format, in registration order."""
        return yaml.safe_dump(
            [d.to_mapping() for d in self.descriptions()],
            sort_keys=False,
            allow_unicode=True,
        )

    def to_prompt(self) -> str:
        """The tools section of a planning prompt."""
        return f"{TOOLS_PROMPT}{self.describe()}\n\n"

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(self, name: str, request: str) -> Outcome[str, ToolNotFoundError]:
        tool = self._tools.get(name)
        if tool is None:
            return Err(ToolNotFoundError(name))
        return Ok(await tool.call(request))

    async def process_chat_input(self, text: str) -> str:
        """
        Find a YAML tool call (``command`` + ``input``) in model text and run it.

        Raises ToolUseError when no well-formed call is present. An unknown
        command yields the not-found message as text.
        """
        command, tool_input = _parse_tool_call(text)
        request = yaml.safe_dump(tool_input, sort_keys=False, allow_unicode=True)
        return str(await self.invoke(command, request))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_tool_call(text: str) -> tuple[str, Any]:
    candidates = [m.group(1) for m in _YAML_BLOCK.finditer(text)] or [text]
    last_error: Exception | None = None
    for candidate in candidates:
        try:
            data = yaml.safe_load(candidate)
        except yaml.YAMLError as exc:
            last_error = exc
            continue
        if isinstance(data, dict) and "command" in data:
            if "input" not in data:
                raise ToolUseError(f"Tool call for '{data['command']}' has no input:\n{text}")
            return str(data["command"]), data["input"]

    if last_error is not None:
        raise ToolUseError(f"Tool call is not valid YAML: {last_error}\n{text}") from last_error
    raise ToolUseError(f"No tool call found in:\n{text}")
