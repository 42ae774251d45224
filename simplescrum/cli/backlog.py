import click
from rich.console import Console
from rich.table import Table

from simplescrum.cli.main import echo_json, run_engine, wants_json
from simplescrum.models.domain import STORY_POINT_SCALE, PBIStatus, RefinementStatus

console = Console()

_STATUS_LABELS = {
    PBIStatus.TO_DO: "To Do",
    PBIStatus.IN_PROGRESS: "In Progress",
    PBIStatus.DONE: "Done",
}


@click.group()
def backlog():
    """Product backlog commands."""
    pass


@backlog.command("add")
@click.argument("project_id")
@click.argument("title")
@click.option(
    "--points", "-p",
    type=click.Choice([str(p) for p in STORY_POINT_SCALE]),
    required=True,
    help="Story points",
)
@click.option("--ready", is_flag=True, help="Mark the item as refined and ready")
@click.pass_context
def add_pbi(ctx, project_id, title, points, ready):
    """Append a new item to the end of the backlog."""
    created = run_engine(
        lambda engine: engine.create_pbi(
            {
                "project_id": project_id,
                "title": title,
                "story_points": int(points),
                "refinement_status": RefinementStatus.READY if ready else RefinementStatus.VAGUE,
            }
        )
    )
    if wants_json(ctx):
        echo_json(created)
        return
    click.echo(f"✓ Added {created.label}: {created.title} ({created.story_points} SP)")
    click.echo(f"  ID: {created.id}")


@backlog.command("list")
@click.argument("project_id")
@click.pass_context
def list_pbis(ctx, project_id):
    """Show the backlog in priority order."""
    def action(engine):
        pbis = engine.list_pbis(project_id)
        return [(p, engine.pbi_status(p.id)) for p in pbis], engine.backlog_summary(project_id)

    rows, summary = run_engine(action)
    if wants_json(ctx):
        echo_json([{**p.to_record(), "label": p.label, "status": status} for p, status in rows])
        return

    if not rows:
        click.echo("Backlog is empty")
        return

    table = Table(title="Product Backlog")
    table.add_column("#", justify="right")
    table.add_column("PBI", style="cyan")
    table.add_column("Title", style="magenta")
    table.add_column("SP", justify="right")
    table.add_column("Refinement")
    table.add_column("Status")
    table.add_column("ID", style="dim")
    for p, status in rows:
        refinement = "[green]ready[/green]" if p.is_ready else "[yellow]vague[/yellow]"
        table.add_row(
            str(p.priority_index + 1), p.label, p.title, str(p.story_points),
            refinement, _STATUS_LABELS[status], p.id,
        )
    console.print(table)
    console.print(f"{summary.ready} ready ({summary.ready_sp} SP), {summary.vague} vague")


@backlog.command("move")
@click.argument("project_id")
@click.argument("pbi_id")
@click.argument("position", type=int)
@click.pass_context
def move_pbi(ctx, project_id, pbi_id, position):
    """Move an item to POSITION (1 = top of the backlog)."""
    changed = run_engine(lambda engine: engine.reorder_backlog(project_id, pbi_id, position - 1))
    if wants_json(ctx):
        echo_json({"changed": {p.id: p.priority_index for p in changed}})
        return
    click.echo(f"✓ Reordered backlog ({len(changed)} items moved)")


@backlog.command("edit")
@click.argument("pbi_id")
@click.option("--title", "-t", default=None, help="New title")
@click.option(
    "--points", "-p",
    type=click.Choice([str(p) for p in STORY_POINT_SCALE]),
    default=None,
    help="New story points",
)
@click.pass_context
def edit_pbi(ctx, pbi_id, title, points):
    """Change an item's title or estimate."""
    changes = {}
    if title is not None:
        changes["title"] = title
    if points is not None:
        changes["story_points"] = int(points)
    updated = run_engine(lambda engine: engine.update_pbi(pbi_id, changes))
    if wants_json(ctx):
        echo_json(updated)
        return
    click.echo(f"✓ Updated {updated.label}: {updated.title} ({updated.story_points} SP)")


@backlog.command("refine")
@click.argument("pbi_id")
@click.pass_context
def refine_pbi(ctx, pbi_id):
    """Toggle an item between vague and ready."""
    updated = run_engine(lambda engine: engine.toggle_refinement(pbi_id))
    if wants_json(ctx):
        echo_json(updated)
        return
    click.echo(f"✓ {updated.label} is now {updated.refinement_status}")


@backlog.command("status")
@click.argument("pbi_id")
@click.argument("status", type=click.Choice([*PBIStatus.ALL, "auto"]))
@click.pass_context
def set_status(ctx, pbi_id, status):
    """Override an item's status, or 'auto' to derive it from its tasks again."""
    override = None if status == "auto" else status

    def action(engine):
        pbi = engine.set_pbi_status(pbi_id, override)
        return pbi, engine.pbi_status(pbi.id)

    updated, effective = run_engine(action)
    if wants_json(ctx):
        echo_json({**updated.to_record(), "status": effective})
        return
    click.echo(f"✓ {updated.label} status: {_STATUS_LABELS[effective]}")


@backlog.command("assign")
@click.argument("pbi_id")
@click.argument("sprint_id", required=False)
@click.pass_context
def assign_pbi(ctx, pbi_id, sprint_id):
    """Put an item into SPRINT_ID, or back into the backlog when omitted."""
    updated = run_engine(lambda engine: engine.assign_pbi(pbi_id, sprint_id))
    if wants_json(ctx):
        echo_json(updated)
        return
    where = f"sprint {updated.sprint_id}" if updated.sprint_id else "the backlog"
    click.echo(f"✓ {updated.label} moved to {where}")


@backlog.command("board")
@click.argument("project_id")
@click.pass_context
def status_board(ctx, project_id):
    """Show backlog items grouped by status."""
    board = run_engine(lambda engine: engine.status_board(project_id))
    if wants_json(ctx):
        echo_json(
            {
                status: {"story_points": column.story_points, "pbis": [p.id for p in column.pbis]}
                for status, column in board.items()
            }
        )
        return

    table = Table(title="Status Board")
    for status in PBIStatus.ALL:
        table.add_column(f"{_STATUS_LABELS[status]} ({board[status].story_points} SP)")
    depth = max((len(c.pbis) for c in board.values()), default=0)
    for row in range(depth):
        cells = []
        for status in PBIStatus.ALL:
            pbis = board[status].pbis
            cells.append(f"{pbis[row].label} {pbis[row].title}" if row < len(pbis) else "")
        table.add_row(*cells)
    console.print(table)
