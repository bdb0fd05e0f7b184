"""
Command Line Interface for codehost.
"""

from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import get_settings
from ..db.audit_service import AuditService
from ..db.base import get_session_local, init_database
from ..db.services import ProjectService, UserService
from ..exceptions import InvalidVisibilityLevel
from ..hooks.system_hooks import SystemHookService
from ..log_config import configure_logging
from ..projects.update_service import UpdateService
from ..projects.visibility import VisibilityLevel
from ..storage.repository_store import FileRepositoryStore

app = typer.Typer(help="codehost - project administration")
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Override the configured log level"),
) -> None:
    """Configure logging for every command."""
    settings = get_settings()
    configure_logging(log_level or settings.log_level, settings.log_format)


@app.command("init-db")
def init_db() -> None:
    """Create all database tables."""
    init_database()
    console.print("✅ Database initialized")


@app.command("add-hook")
def add_hook(
    url: str = typer.Argument(..., help="URL receiving system hook events"),
    token: Optional[str] = typer.Option(None, help="Secret sent in the token header"),
) -> None:
    """Register a system hook."""
    db = get_session_local()()
    try:
        with SystemHookService(db) as hooks:
            hook = hooks.add_hook(url, token)
        console.print(f"✅ Registered system hook {hook.id}: {hook.url}")
    finally:
        db.close()


@app.command("update-project")
def update_project(
    project_id: int = typer.Argument(..., help="ID of the project to update"),
    username: str = typer.Option(..., "--as", help="Username performing the update"),
    name: Optional[str] = typer.Option(None, help="New project name"),
    path: Optional[str] = typer.Option(None, help="New project path"),
    description: Optional[str] = typer.Option(None, help="New description"),
    visibility: Optional[str] = typer.Option(
        None, help="private, internal or public (or 0, 10, 20)"
    ),
    default_branch: Optional[str] = typer.Option(None, help="New default branch"),
) -> None:
    """Update a project's metadata."""
    params: Dict[str, Any] = {}
    if name is not None:
        params["name"] = name
    if path is not None:
        params["path"] = path
    if description is not None:
        params["description"] = description
    if default_branch is not None:
        params["default_branch"] = default_branch
    if visibility is not None:
        try:
            params["visibility_level"] = VisibilityLevel.from_value(visibility)
        except InvalidVisibilityLevel as e:
            console.print(f"❌ {e.message}")
            raise typer.Exit(code=2)

    db = get_session_local()()
    try:
        user = UserService(db).get_by_username(username)
        if user is None:
            console.print(f"❌ User not found: {username}")
            raise typer.Exit(code=1)

        project = ProjectService(db).get(project_id)
        if project is None:
            console.print(f"❌ Project not found: {project_id}")
            raise typer.Exit(code=1)

        result = UpdateService(
            db, project, user, params, store=FileRepositoryStore.from_settings()
        ).execute()

        if result.is_success:
            db.refresh(project)
            console.print(
                Panel.fit(
                    f"{project.full_path}\n"
                    f"visibility: {project.visibility.label}\n"
                    f"default branch: {project.default_branch or '-'}",
                    title="✅ Project updated",
                    style="green",
                )
            )
            return

        console.print(Panel.fit(result.message, title="❌ Update failed", style="red"))
        for message in project.errors.full_messages():
            console.print(f"  • {message}")
        raise typer.Exit(code=1)
    finally:
        db.close()


@app.command()
def audit(
    project_id: int = typer.Argument(..., help="ID of the project"),
    limit: int = typer.Option(20, help="Number of entries to show"),
    as_json: bool = typer.Option(False, "--json", help="Print entries as JSON"),
) -> None:
    """Show the audit trail of a project."""
    db = get_session_local()()
    try:
        entries = AuditService(db).query_by_entity("Project", project_id, limit=limit)
        records = [entry.to_dict() for entry in entries]
    finally:
        db.close()

    if as_json:
        console.print_json(data=records)
        return

    if not records:
        console.print(f"No audit entries for project {project_id}")
        return

    table = Table(
        title=f"Audit log: project {project_id}",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("Time", style="cyan")
    table.add_column("Actor")
    table.add_column("Action", style="green")
    table.add_column("Before")
    table.add_column("After")
    table.add_column("Note")

    for record in records:
        table.add_row(
            record["ts"] or "-",
            f"{record['actor_kind']}:{record['actor_id']}",
            record["action"],
            str(record["before"] or ""),
            str(record["after"] or ""),
            record["note"] or "",
        )

    console.print(table)


if __name__ == "__main__":
    app()
