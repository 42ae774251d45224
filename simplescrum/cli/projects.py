import click
from rich.console import Console
from rich.table import Table

from simplescrum.cli.main import echo_json, run_engine, wants_json

console = Console()

_BAND_STYLES = {"complete": "green", "good": "cyan", "fair": "yellow", "poor": "red"}


@click.group()
def project():
    """Project management commands."""
    pass


@project.command("create")
@click.argument("name")
@click.option("--goal", "-g", default="", help="Product goal")
@click.pass_context
def create_project(ctx, name, goal):
    """Create a new project."""
    created = run_engine(lambda engine: engine.create_project({"name": name, "product_goal": goal}))
    if wants_json(ctx):
        echo_json(created)
        return
    click.echo(f"✓ Created project: {created.name}")
    click.echo(f"  ID: {created.id}")


@project.command("list")
@click.pass_context
def list_projects(ctx):
    """List all projects."""
    projects = run_engine(lambda engine: engine.list_projects())

    if wants_json(ctx):
        echo_json(projects)
        return

    if not projects:
        click.echo("No projects found")
        return

    table = Table(title="Projects")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Velocity", justify="right", style="green")
    table.add_column("Product Goal")
    for p in projects:
        table.add_row(p.id, p.name, str(p.current_velocity), p.product_goal)
    console.print(table)


@project.command("show")
@click.argument("project_id")
@click.pass_context
def show_project(ctx, project_id):
    """Show project details and backlog totals."""
    def action(engine):
        return engine.get_project(project_id), engine.backlog_summary(project_id), engine.active_sprint(project_id)

    p, summary, active = run_engine(action)
    if wants_json(ctx):
        echo_json({"project": p, "backlog": summary, "active_sprint": active})
        return

    console.print(f"[bold]Project: {p.name}[/bold] (ID: {p.id})")
    if p.product_goal:
        console.print(f"  Goal: {p.product_goal}")
    console.print(f"  Current velocity: {p.current_velocity} SP")
    console.print(
        f"  Backlog: {summary.total} items ({summary.ready} ready, {summary.vague} vague), "
        f"{summary.total_sp} SP total"
    )
    if active is not None:
        console.print(f"  Active sprint: #{active.sprint_number} ({active.start_date} → {active.end_date})")


@project.command("update")
@click.argument("project_id")
@click.option("--name", "-n", default=None, help="New name")
@click.option("--goal", "-g", default=None, help="New product goal")
@click.pass_context
def update_project(ctx, project_id, name, goal):
    """Rename a project or change its product goal."""
    changes = {k: v for k, v in (("name", name), ("product_goal", goal)) if v is not None}
    updated = run_engine(lambda engine: engine.update_project(project_id, changes))
    if wants_json(ctx):
        echo_json(updated)
        return
    click.echo(f"✓ Updated project: {updated.name}")


@project.command("velocity")
@click.argument("project_id")
@click.pass_context
def show_velocity(ctx, project_id):
    """Show velocity across closed sprints."""
    history = run_engine(lambda engine: engine.velocity_history(project_id))

    if wants_json(ctx):
        echo_json(
            {
                "project_id": history.project_id,
                "average_velocity": history.average_velocity,
                "has_reliable_baseline": history.has_reliable_baseline,
                "entries": [
                    {
                        "sprint_number": e.sprint_number,
                        "committed_sp": e.committed_sp,
                        "completed_sp": e.completed_sp,
                        "completion_rate": e.completion_rate,
                    }
                    for e in history.entries
                ],
            }
        )
        return

    if not history.entries:
        click.echo("No closed sprints yet")
        return

    table = Table(title="Velocity")
    table.add_column("Sprint", justify="right", style="cyan")
    table.add_column("Committed", justify="right")
    table.add_column("Completed", justify="right")
    table.add_column("Completion", justify="right")
    for e in history.entries:
        style = _BAND_STYLES[e.band]
        table.add_row(
            f"#{e.sprint_number}",
            str(e.committed_sp),
            str(e.completed_sp),
            f"[{style}]{e.completion_rate}%[/{style}]",
        )
    console.print(table)
    console.print(f"Average velocity: [bold]{history.average_velocity}[/bold] SP")
    if not history.has_reliable_baseline:
        console.print("[dim]Close at least 3 sprints for a reliable baseline.[/dim]")
