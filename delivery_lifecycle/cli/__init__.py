"""
Command Line Interface for the delivery lifecycle.
"""

from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..db.base import init_database, session_scope
from ..errors import LifecycleError
from ..lifecycle.enums import KanbanColumn, UnitStatus
from ..lifecycle.registry import ProjectRegistry
from ..lifecycle.transitions import ALLOWED_TRANSITIONS, get_available_actions
from ..logging import setup_logging

app = typer.Typer(help="Delivery Lifecycle - versioned deliveries and review workflow")
console = Console()

COLUMN_TITLES = {
    KanbanColumn.AWAITING_EDITOR: "⏳ Awaiting editor",
    KanbanColumn.IN_PROGRESS: "🛠️ In progress",
    KanbanColumn.IN_REVIEW: "👀 In review",
    KanbanColumn.REVISION_REQUESTED: "🔁 Revision requested",
    KanbanColumn.COMPLETED: "✅ Completed",
}


@app.callback()
def main() -> None:
    setup_logging(get_settings())


@app.command("init-db")
def init_db():
    """Create the lifecycle tables in the configured database."""
    settings = get_settings()
    init_database()
    console.print(f"✅ Tables created in {settings.database_url}")


@app.command()
def transitions(
    status: Optional[str] = typer.Argument(None, help="Only show transitions leaving this status"),
):
    """Show the status transition table."""
    if status is None:
        rows = list(ALLOWED_TRANSITIONS)
    else:
        try:
            rows = get_available_actions(UnitStatus(status))
        except ValueError:
            valid = ", ".join(s.value for s in UnitStatus)
            console.print(f"❌ Unknown status '{status}'. Use one of: {valid}")
            raise typer.Exit(code=1)

    table = Table(title="Status Transitions", show_header=True, header_style="bold magenta")
    table.add_column("From", style="cyan")
    table.add_column("Action", style="yellow")
    table.add_column("To", style="green")
    table.add_column("Paid")
    table.add_column("+1 Revision")

    for row in rows:
        table.add_row(
            row.source.value,
            row.action.value,
            row.destination.value,
            "💳" if row.requires_payment else "",
            "➕" if row.increments_revision else "",
        )

    console.print(table)


@app.command()
def board(
    project_id: str = typer.Argument(..., help="Project to show"),
):
    """Show a project's kanban board and progress."""
    with session_scope() as db:
        try:
            view = ProjectRegistry(db).get_board(project_id)
        except LifecycleError as e:
            console.print(f"❌ {e.message}")
            raise typer.Exit(code=1)

    progress = view.progress
    summary = (
        f"{progress.percentage}% complete · {progress.completed}/{progress.total} videos"
        f" · {progress.in_review} in review · {progress.in_progress} in progress"
    )
    if progress.has_delayed:
        summary += f" · ⚠️ {progress.delayed_count} delayed"
    rprint(Panel.fit(summary, title=f"Project {project_id}", style="bold blue"))

    table = Table(show_header=True, header_style="bold cyan")
    for column in KanbanColumn:
        table.add_column(f"{COLUMN_TITLES[column]} ({len(view.columns[column])})")

    depth = max((len(items) for items in view.columns.values()), default=0)
    for i in range(depth):
        cells = []
        for column in KanbanColumn:
            items = view.columns[column]
            if i < len(items):
                video = items[i]
                label = video.get("title") or video["id"]
                cells.append(f"{label} (rev {video['revision_count']})")
            else:
                cells.append("")
        table.add_row(*cells)

    console.print(table)


if __name__ == "__main__":
    app()
