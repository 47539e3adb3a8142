"""
Custom Flask CLI commands.

These commands are registered with the app via ``register_commands()``
in the application factory. Run them with ``flask <command_name>``.

Usage::

    flask api-check                  # Verify database and API connectivity
    flask org-tree DEPT_ID           # Print a department's position forest
    flask org-export DEPT_ID -f xlsx -o chart.xlsx
"""

import click
from flask import current_app
from flask.cli import with_appcontext

from orgchart.extensions import db
from orgchart.services import hierarchy_service
from orgchart.services.errors import OrgApiError


@click.command("api-check")
@with_appcontext
def api_check_command():
    """
    Verify the audit database and the org-structure API are reachable.

    Runs a trivial query against the database, then a one-record read
    against the API using the configured base URL and token.
    """
    click.echo("=" * 60)
    click.echo("  Org Chart — Connectivity Check")
    click.echo("=" * 60)

    # -- Step 1: Audit database --------------------------------------------
    click.echo("[1/2] Testing database connection...")
    try:
        db.session.execute(db.text("SELECT 1"))
        click.secho("      ✓ Database reachable.", fg="green")
    except Exception as exc:  # pylint: disable=broad-exception-caught
        click.secho(f"      ✗ Connection failed: {exc}", fg="red")
        click.echo("        Does DATABASE_URL point at a writable database?")
        return

    # -- Step 2: Org-structure API -----------------------------------------
    base_url = current_app.config["ORG_API_BASE_URL"]
    click.echo(f"[2/2] Testing org-structure API at {base_url}...")
    try:
        hierarchy_service.get_client().ping()
        click.secho("      ✓ API reachable.", fg="green")
    except OrgApiError as exc:
        click.secho(f"      ✗ API check failed: {exc.message}", fg="red")
        if exc.status in (401, 403):
            click.echo("        Is ORG_API_TOKEN set and still valid?")
        return

    click.echo("\n" + "=" * 60)
    click.secho("  All checks passed.", fg="green", bold=True)
    click.echo("=" * 60)


@click.command("org-tree")
@click.argument("department_id")
@with_appcontext
def org_tree_command(department_id):
    """Print a department's position forest, head tree first."""
    try:
        tree = hierarchy_service.load_department_tree(department_id)
    except OrgApiError as exc:
        raise click.ClickException(exc.message) from exc

    department = tree.department
    click.echo(f"{department.code or department.key}  {department.name}")
    if not tree.forest:
        click.echo("  (no active positions)")
        return

    head_key = department.head_key
    for root in tree.forest:
        if root.is_orphan_root:
            click.secho("  -- orphan --", fg="yellow")
        for node, depth in root.walk():
            marker = " *" if node.id == head_key else ""
            click.echo(
                f"  {'  ' * depth}{node.position.title or '(untitled)'}"
                f" [{node.position.code or node.id}]{marker}"
            )


@click.command("org-export")
@click.argument("department_id")
@click.option(
    "--format", "-f", "fmt",
    type=click.Choice(sorted(hierarchy_service.EXPORT_FORMATS)),
    default="csv",
    show_default=True,
)
@click.option("--output", "-o", type=click.Path(dir_okay=False, writable=True), default=None)
@with_appcontext
def org_export_command(department_id, fmt, output):
    """Export a department's chart to a file."""
    try:
        buffer, _mimetype, filename = hierarchy_service.export_department(department_id, fmt)
    except OrgApiError as exc:
        raise click.ClickException(exc.message) from exc

    path = output or filename
    with open(path, "wb") as handle:
        handle.write(buffer.getvalue())
    click.echo(f"Wrote {path}")


def register_commands(app):
    """Register all custom CLI commands with the Flask application."""
    app.cli.add_command(api_check_command)
    app.cli.add_command(org_tree_command)
    app.cli.add_command(org_export_command)
