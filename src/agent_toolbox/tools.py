# tools.py
# Reference tools, built with the handler framework.
# The agent reaches these only through a Toolbox; default_toolbox() wires them.

import asyncio
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from agent_toolbox.description import ToolModel
from agent_toolbox.extract import State, Text, Yaml
from agent_toolbox.handler import Err, Handler, Outcome, handler
from agent_toolbox.parser import INTERMEDIATE_ANSWER_TOOL
from agent_toolbox.toolbox import Toolbox


class ToolSettings(BaseModel):
    """Shared state bound into every reference tool."""

    workspace: Path = Field(default=Path("workspace"), description="Root for file writes.")
    max_results: int = Field(default=4, ge=1)
    http_timeout: float = Field(default=10.0, gt=0)
    shell_timeout: float = Field(default=30.0, gt=0)


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


class SearchInput(ToolModel):
    query: str = Field(..., description="What to search the web for.")


class SearchOutput(ToolModel):
    result: str = Field(..., description="Matching pages: title, snippet and source URL per hit.")

    def __str__(self) -> str:
        return self.result


async def _search(settings: ToolSettings, payload: SearchInput) -> SearchOutput:
    from ddgs import DDGS

    query = payload.query.strip()
    if not query:
        raise ValueError("no query provided.")

    results = await asyncio.to_thread(
        lambda: list(DDGS().text(query, max_results=settings.max_results))
    )
    if not results:
        return SearchOutput(result="No results found.")

    lines = []
    for r in results:
        lines.append(f"[{r.get('title', 'No Title')}]\n{r.get('body', '')}\nSource: {r.get('href', '')}")
    return SearchOutput(result="\n\n".join(lines))


async def _report_search(outcome: Outcome) -> SearchOutput:
    if isinstance(outcome, Err):
        return SearchOutput(result=f"Search failed: {outcome.error}")
    return outcome.value


search = Handler(_search, (State(), Yaml(SearchInput))).pipe(_report_search)
# Self-ask follow-up questions arrive as bare text.
ask = Handler(_search, (State(), Text(SearchInput, "query"))).pipe(_report_search)


# ---------------------------------------------------------------------------
# Shell
# ---------------------------------------------------------------------------


class BashInput(ToolModel):
    cmd: str = Field(..., description="The command to execute in bash.")


class BashOutput(ToolModel):
    stdout: str = Field(default="", description="Standard output of the command.")
    stderr: str = Field(default="", description="Standard error of the command.")
    exit_status: int = Field(..., description="Exit code; 0 means success.")


@handler(State(), Yaml(BashInput), raises=(OSError, asyncio.TimeoutError))
async def bash(settings: ToolSettings, payload: BashInput) -> BashOutput:
    """Runs a bash command and reports its output."""
    proc = await asyncio.create_subprocess_exec(
        "bash",
        "-c",
        payload.cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=settings.shell_timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise asyncio.TimeoutError(
            f"Command timed out after {settings.shell_timeout}s."
        ) from None
    return BashOutput(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        exit_status=proc.returncode,
    )


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class FileWriteInput(ToolModel):
    path: str = Field(..., description="File path, relative to the workspace.")
    content: str = Field(default="", description="Text to write.")


class FileWriteOutput(ToolModel):
    path: str = Field(..., description="Path that was written.")
    bytes_written: int = Field(..., description="Number of bytes written.")


def resolve_in_workspace(workspace: Path, path: str) -> Path:
    """Resolve `path` inside `workspace`, refusing anything that escapes it."""
    root = workspace.resolve()
    target = (root / path).resolve()
    if not target.is_relative_to(root):
        raise PermissionError(f"SECURITY BLOCK: '{path}' is outside the workspace.")
    return target


@handler(State(), Yaml(FileWriteInput), raises=(OSError, ValueError))
async def file_write(settings: ToolSettings, payload: FileWriteInput) -> FileWriteOutput:
    """Writes text to a file inside the workspace."""
    if not payload.path.strip():
        raise ValueError("no path provided.")
    target = resolve_in_workspace(settings.workspace, payload.path)
    target.parent.mkdir(parents=True, exist_ok=True)
    data = payload.content.encode("utf-8")
    target.write_bytes(data)
    return FileWriteOutput(path=str(target), bytes_written=len(data))


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------


class HttpPostInput(ToolModel):
    url: str = Field(..., description="Absolute URL to POST to.")
    payload: dict[str, Any] = Field(default_factory=dict, description="JSON body.")


class HttpPostOutput(ToolModel):
    status_code: int = Field(..., description="HTTP status of the response.")
    body: str = Field(default="", description="Response body, truncated to 2000 characters.")


@handler(State(), Yaml(HttpPostInput))
async def http_post(settings: ToolSettings, payload: HttpPostInput) -> HttpPostOutput:
    """Sends a JSON POST request."""
    import httpx

    if not payload.url.strip():
        raise ValueError("no URL provided.")
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        response = await client.post(payload.url, json=payload.payload)
    return HttpPostOutput(status_code=response.status_code, body=response.text[:2000])


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def default_toolbox(settings: ToolSettings | None = None) -> Toolbox:
    settings = settings or ToolSettings()
    toolbox = Toolbox()
    toolbox.add_tool(
        ask.with_state(
            settings,
            name=INTERMEDIATE_ANSWER_TOOL,
            description="Answers a follow-up question by searching the web.",
            description_context="Use for facts you are not sure about.",
        )
    )
    toolbox.add_tool(
        search.with_state(
            settings,
            name="search",
            description="Searches the web.",
            description_context="Use to find current information.",
        )
    )
    toolbox.add_tool(
        bash.with_state(
            settings,
            name="bash",
            description_context="Use to inspect or change the local machine.",
        )
    )
    toolbox.add_tool(file_write.with_state(settings, name="file_write"))
    toolbox.add_tool(http_post.with_state(settings, name="http_post"))
    return toolbox
