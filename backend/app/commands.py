"""
commands.py — Flask CLI commands.

Public registration only ever creates patient accounts. Doctor and admin
accounts are provisioned by an operator:

    flask --app "backend.app:create_app('production')" create-user \
        --email admin@hospital.example --first-name Ada --last-name Admin --role admin
"""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext

from backend.app.errors import AppError
from backend.app.extensions import db
from backend.app.models.user import Role
from backend.app.services.audit_service import ClientInfo


@click.command("create-user")
@click.option("--email", required=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--first-name", required=True)
@click.option("--last-name", required=True)
@click.option(
    "--role",
    type=click.Choice([role.value for role in Role]),
    default=Role.ADMIN.value,
    show_default=True,
)
@with_appcontext
def create_user_command(email, password, first_name, last_name, role):
    """Create a doctor or admin account."""
    coordinator = current_app.extensions["session_coordinator"]
    try:
        result = coordinator.register(
            db.session,
            email=email,
            password=password,
            first_name=first_name,
            last_name=last_name,
            role=Role(role),
            client=ClientInfo(ip_address="cli", user_agent="flask create-user"),
        )
    except AppError as exc:
        raise click.ClickException(exc.message) from exc

    click.echo(f"Created {role} account {result.user['email']} (id={result.user['id']}).")


def register_commands(app) -> None:
    app.cli.add_command(create_user_command)
