import click
from rich.console import Console
from rich.table import Table

from simplescrum.cli.main import echo_json, run_engine, wants_json
from simplescrum.models.domain import SprintStatus, TaskStatus

console = Console()

_CAPACITY_STYLES = {"under": "green", "at": "cyan", "over": "red"}


@click.group()
def sprint():
    """Sprint planning and closing commands."""
    pass


@sprint.command("pool")
@click.argument("project_id")
@click.pass_context
def planning_pool(ctx, project_id):
    """Show ready, unassigned items available for planning."""
    def action(engine):
        return engine.planning_pool(project_id), engine.recommended_capacity(project_id)

    pool, capacity = run_engine(action)
    if wants_json(ctx):
        echo_json({"recommended_capacity": capacity, "pbis": pool})
        return

    console.print(f"Recommended capacity: [bold]{capacity}[/bold] SP")
    if not pool:
        click.echo("No ready items in the backlog")
        return
    table = Table(title="Planning Pool")
    table.add_column("PBI", style="cyan")
    table.add_column("Title", style="magenta")
    table.add_column("SP", justify="right")
    table.add_column("ID", style="dim")
    for p in pool:
        table.add_row(p.label, p.title, str(p.story_points), p.id)
    console.print(table)


@sprint.command("plan")
@click.argument("project_id")
@click.option("--capacity", "-c", type=int, default=None, help="Team capacity in SP (default: recommended)")
@click.option("--goal", "-g", default="", help="Sprint goal")
@click.option("--pbi", "pbi_ids", multiple=True, help="Backlog item to include (repeatable)")
@click.pass_context
def plan_sprint(ctx, project_id, capacity, goal, pbi_ids):
    """Start a new sprint with the selected backlog items."""
    def action(engine):
        team_capacity = capacity if capacity is not None else engine.recommended_capacity(project_id)
        return engine.plan_sprint(project_id, team_capacity, list(pbi_ids), goal)

    result = run_engine(action)
    report = result.capacity
    if wants_json(ctx):
        echo_json(
            {
                "sprint": result.sprint,
                "pbi_ids": [p.id for p in result.pbis],
                "capacity": {
                    "team_capacity": report.team_capacity,
                    "committed_sp": report.committed_sp,
                    "over_capacity_sp": report.over_capacity_sp,
                    "status": report.status,
                },
                "carried_tasks": result.carried_tasks,
            }
        )
        return

    s = result.sprint
    click.echo(f"✓ Started sprint #{s.sprint_number} ({s.start_date} → {s.end_date})")
    click.echo(f"  ID: {s.id}")
    style = _CAPACITY_STYLES[report.status]
    console.print(
        f"  Committed [{style}]{report.committed_sp}[/{style}] of {report.team_capacity} SP"
    )
    if report.is_over_capacity:
        console.print(f"  [red]Over capacity by {report.over_capacity_sp} SP[/red]")
    for t in result.carried_tasks:
        click.echo(f"  Carried retrospective action as {t.task_id}: {t.description}")


@sprint.command("list")
@click.argument("project_id")
@click.option("--status", "-s", type=click.Choice(SprintStatus.ALL), default=None, help="Filter by status")
@click.pass_context
def list_sprints(ctx, project_id, status):
    """List a project's sprints."""
    sprints = run_engine(lambda engine: engine.list_sprints(project_id, status=status))
    if wants_json(ctx):
        echo_json(sprints)
        return
    if not sprints:
        click.echo("No sprints found")
        return
    for s in sprints:
        icon = "●" if s.is_active else "○"
        done = f", {s.completed_sp} done" if s.is_closed else ""
        click.echo(f"  {icon} #{s.sprint_number} [{s.id}] {s.committed_sp}/{s.team_capacity} SP{done} ({s.status})")


@sprint.command("show")
@click.argument("sprint_id")
@click.pass_context
def show_sprint(ctx, sprint_id):
    """Show a sprint with its task board."""
    def action(engine):
        s = engine.get_sprint(sprint_id)
        return s, engine.list_tasks(s.id), engine.retrospective_for_sprint(s.id)

    s, tasks, retrospective = run_engine(action)
    if wants_json(ctx):
        echo_json({"sprint": s, "tasks": tasks, "retrospective": retrospective})
        return

    console.print(f"[bold]Sprint #{s.sprint_number}[/bold] ({s.status}) {s.start_date} → {s.end_date}")
    if s.sprint_goal:
        console.print(f"  Goal: {s.sprint_goal}")
    console.print(f"  Capacity {s.team_capacity} SP, committed {s.committed_sp} SP")
    if tasks:
        table = Table(title="Tasks")
        table.add_column("Task", style="cyan")
        table.add_column("Description")
        table.add_column("Status")
        table.add_column("Owner")
        table.add_column("Hours", justify="right")
        for t in tasks:
            table.add_row(t.task_id, t.description, t.status, t.owner, f"{t.time_estimate_hours:g}")
        console.print(table)
    if retrospective is not None:
        console.print("[bold]Retrospective[/bold]")
        console.print(f"  Went well: {retrospective.went_well}")
        console.print(f"  To improve: {retrospective.to_improve}")
        console.print(f"  Action item: {retrospective.action_item}")


@sprint.command("close")
@click.argument("sprint_id")
@click.pass_context
def close_sprint(ctx, sprint_id):
    """Close a sprint and record the team's velocity."""
    review = run_engine(lambda engine: engine.close_sprint(sprint_id))
    if wants_json(ctx):
        echo_json(
            {
                "sprint": review.sprint,
                "completed_pbi_ids": [p.id for p in review.completed_pbis],
                "incomplete_pbi_ids": [p.id for p in review.incomplete_pbis],
                "released_pbi_ids": review.released_pbi_ids,
                "completed_sp": review.completed_sp,
                "committed_sp": review.committed_sp,
                "completion_percent": review.completion_percent,
            }
        )
        return
    click.echo(f"✓ Closed sprint #{review.sprint.sprint_number}")
    click.echo(
        f"  Completed {review.completed_sp} of {review.committed_sp} SP ({review.completion_percent}%)"
    )
    for p in review.completed_pbis:
        click.echo(f"  ✓ {p.label} {p.title}")
    for p in review.incomplete_pbis:
        click.echo(f"  ○ {p.label} {p.title}")


@sprint.command("retro")
@click.argument("sprint_id")
@click.option("--went-well", default="", help="What went well")
@click.option("--to-improve", default="", help="What to improve")
@click.option("--action", "action_item", default="", help="Action item, carried into the next sprint as a task")
@click.pass_context
def record_retrospective(ctx, sprint_id, went_well, to_improve, action_item):
    """Record the sprint retrospective."""
    retrospective = run_engine(
        lambda engine: engine.record_retrospective(
            sprint_id, went_well=went_well, to_improve=to_improve, action_item=action_item
        )
    )
    if wants_json(ctx):
        echo_json(retrospective)
        return
    click.echo("✓ Retrospective saved")


# =============================================================================
# Task Commands
# =============================================================================

@click.group()
def task():
    """Sprint task commands."""
    pass


@task.command("add")
@click.argument("sprint_id")
@click.argument("description")
@click.option("--pbi", "pbi_id", default=None, help="Backlog item the task belongs to (omit for a process task)")
@click.option("--owner", "-o", default="", help="Who is doing it")
@click.option("--hours", type=float, default=0.0, help="Time estimate in hours")
@click.pass_context
def add_task(ctx, sprint_id, description, pbi_id, owner, hours):
    """Add a task to a sprint."""
    created = run_engine(
        lambda engine: engine.create_task(
            {
                "sprint_id": sprint_id,
                "description": description,
                "pbi_id": pbi_id,
                "owner": owner,
                "time_estimate_hours": hours,
            }
        )
    )
    if wants_json(ctx):
        echo_json(created)
        return
    click.echo(f"✓ Added task {created.task_id}: {created.description}")
    click.echo(f"  ID: {created.id}")


@task.command("move")
@click.argument("task_id")
@click.argument("status", type=click.Choice(TaskStatus.ALL))
@click.pass_context
def move_task(ctx, task_id, status):
    """Move a task to another board column."""
    updated = run_engine(lambda engine: engine.move_task(task_id, status))
    if wants_json(ctx):
        echo_json(updated)
        return
    click.echo(f"✓ {updated.task_id} → {updated.status}")
