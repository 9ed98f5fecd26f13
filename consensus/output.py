"""Rich console rendering of debate events and markdown file save for sessions."""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from consensus import events
from consensus.costs import format_cost
from consensus.models import CostSnapshot, Session

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def cost_table(cost: dict[str, Any]) -> Table:
    """Render a cost dict (CostSnapshot.to_dict() shape) as a table."""
    table = Table(title="Cost", show_edge=False)
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Cost", justify="right")
    for model_id, usage in cost["byModel"].items():
        table.add_row(
            model_id,
            str(usage["inputTokens"]),
            str(usage["outputTokens"]),
            format_cost(usage["cost"]),
        )
    table.add_row(
        "[bold]Total[/bold]",
        str(cost["totalInputTokens"]),
        str(cost["totalOutputTokens"]),
        f"[bold]{format_cost(cost['totalCost'])}[/bold]",
    )
    return table


class ConsoleSink:
    """EventSink that prints the debate live to a Rich console."""

    def __init__(self, out: Console | None = None, show_costs: bool = False) -> None:
        self._console = out or console
        self._show_costs = show_costs
        self._closed = False
        self.events: list[dict[str, Any]] = []

    @property
    def disconnected(self) -> bool:
        return False

    async def send(self, event: dict[str, Any]) -> None:
        self.events.append(event)
        kind = event["type"]
        out = self._console
        if kind == events.DEBATE_START:
            out.print(Text(f"Session {event['sessionId']}", style="dim"))
        elif kind == events.MODEL_START:
            out.print(Rule(f"[bold cyan]{event['modelDisplayName']}[/bold cyan] (turn {event['turnNumber']})"))
        elif kind == events.MODEL_CHUNK:
            out.print(event["content"], end="", markup=False, highlight=False)
        elif kind == events.MODEL_COMPLETE:
            out.print()
        elif kind == events.AGREEMENT_DETECTED:
            out.print(f"\n[bold green]Agreement reached:[/bold green] {event['agreementReason']}")
        elif kind == events.SYNTHESIS_START:
            out.print(Rule("[bold green]Synthesis[/bold green]"))
        elif kind == events.COST_UPDATE and self._show_costs:
            out.print(Text(f"Running cost: {format_cost(event['cost']['totalCost'])}", style="dim"))
        elif kind == events.DEBATE_COMPLETE:
            out.print(Rule("[bold green]Consensus[/bold green]"))
            out.print(Markdown(event["consensus"]["summary"]))
            out.print(cost_table(event["cost"]))
        elif kind == events.DEBATE_ERROR:
            error = event["error"]
            out.print(f"[bold red]{error['code']}:[/bold red] {error['message']}")

    async def close(self) -> None:
        self._closed = True


def save_to_file(
    session: Session,
    cost: CostSnapshot,
    output_dir: Path,
    slug_override: str | None = None,
) -> Path:
    """Save the full debate transcript as a markdown file.

    Args:
        session: The finished Session.
        cost: Final cost snapshot for the session.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the question text.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(session.question)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    panel_str = ", ".join(f"{p.display_name} ({p.role_label})" for p in session.participants)
    lines: list[str] = [
        f"# Debate: {session.question[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Session:** {session.id}",
        f"**Panel:** {panel_str}",
        f"**Outcome:** {session.status.value}",
        f"**Turns:** {len(session.transcript)}",
        f"**Cost:** {format_cost(cost.total_cost)} ({cost.total_tokens} tokens)",
        "",
        "---",
        "",
    ]

    current_round: int | None = None
    for entry in session.transcript:
        if entry.is_synthesis:
            continue
        if entry.round_number != current_round:
            current_round = entry.round_number
            label = "Initial Responses" if current_round == 0 else "Review"
            lines += [f"## Round {current_round}: {label}", ""]
        marker = " [agrees]" if entry.is_agreement else ""
        lines += [
            f"### {entry.display_name} ({entry.role.replace('-', ' ')}){marker}",
            "",
            entry.content,
            "",
            f"*Turn {entry.turn_number} | Tokens: {entry.input_tokens} in / {entry.output_tokens} out*",
            "",
        ]

    if session.consensus is not None:
        lines += [
            f"## Consensus (by {session.participants[0].display_name})",
            "",
            session.consensus.summary,
            "",
        ]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
