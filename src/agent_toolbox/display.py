# display.py
# All terminal output for the agent loop.
#
# This module owns presentation entirely. agent.py never formats strings —
# it calls named functions here. Swap this file to change the entire UI.
#
# Colour language:
#   cyan    — loop / routing events
#   blue    — model calls and responses
#   green   — success / final answer
#   red     — failures, halts
#   magenta — action / observation internals

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text
from rich.tree import Tree

from agent_toolbox.models import AgentAction, AgentFinish, IntermediateStep

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: str, max_len: int = 120) -> str:
    value = value.replace("\n", " ")
    if len(value) > max_len:
        value = value[:max_len] + "…"
    return escape(value)


# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------


def run_started(query: str, tool_names: list[str]) -> None:
    console.print()
    console.print(Rule("[cyan]NEW RUN[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(query)}[/white]\n\n[dim]Tools: {', '.join(tool_names) or '(none)'}[/dim]",
            title=_label("QUERY", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


def round_start(iteration: int, elapsed: float) -> None:
    console.print()
    console.print(
        f"[bold cyan]  ROUND {iteration + 1}[/bold cyan]  [dim]{elapsed:.1f}s elapsed[/dim]"
    )


def calling_model() -> None:
    console.print("  [blue]↳ Requesting plan from model…[/blue]")


def plan_received(plan: str) -> None:
    console.print(f"  [blue]Plan[/blue]     [dim white]{_mono(plan, 200)}[/dim white]")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def action_taken(action: AgentAction) -> None:
    console.print(
        f"  [magenta]Action[/magenta]   [bold white]{escape(action.tool)}[/bold white]"
        f"  [dim]{_mono(action.tool_input, 100)}[/dim]"
    )


def observation_received(observation: str) -> None:
    console.print(f"  [magenta]Observe[/magenta]  [white]{_mono(observation, 140)}[/white]")


def tool_not_found(tool_name: str) -> None:
    console.print(
        Panel(
            f"[bold red]Tool [white]{escape(repr(tool_name))}[/white] is not registered.[/bold red]\n"
            "[dim]Recorded as the observation; the model will see it next round.[/dim]",
            title=_label("TOOL NOT FOUND ✗", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Termination
# ---------------------------------------------------------------------------


def finished(finish: AgentFinish, iterations: int, elapsed: float) -> None:
    console.print()
    console.print(
        Panel(
            f"[white]{escape(finish.output or '')}[/white]",
            title=_label("FINAL ANSWER", "green"),
            subtitle=f"[dim]{iterations} round(s), {elapsed:.1f}s[/dim]",
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()


def halt(reason: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(reason)}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


def transcript_tree(query: str, steps: list[IntermediateStep], finish: AgentFinish | None) -> None:
    graph = Tree(f"[bold green]Run: {_mono(query, 80)}[/bold green]")
    for index, step in enumerate(steps, start=1):
        node = graph.add(f"[bold magenta]Step {index}: {step.action.tool}[/bold magenta]")
        node.add(f"[dim]Input:[/dim] {_mono(step.action.tool_input, 80)}")
        node.add(f"[green]Observation:[/green] {_mono(step.observation, 80)}")
    if finish is not None:
        graph.add(f"[bold green]Answer:[/bold green] {_mono(finish.output or '', 80)}")
    console.print(graph)
