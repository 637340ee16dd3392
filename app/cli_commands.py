"""
Flask CLI commands for database setup and account bootstrap.
"""

import click
from flask.cli import with_appcontext

from app.extensions import db
from app.models import Role, University, User
from app.utils.validation import password_errors, validate_email
from app.errors import ValidationError


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create all tables (for development; production uses `flask db upgrade`)."""
    db.create_all()
    click.echo("✓ Database tables created.")


@click.command('create-admin')
@click.option('--email', prompt=True, help='Login e-mail of the new admin.')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True,
              help='Initial password.')
@with_appcontext
def create_admin_command(email, password):
    """Create an admin account. Used to bootstrap a fresh installation."""
    try:
        email = validate_email(email)
    except ValidationError as e:
        raise click.ClickException(e.description)

    problems = password_errors(password)
    if problems:
        raise click.ClickException("Password must contain " + ", ".join(problems) + ".")

    if User.query.filter(db.func.lower(User.email) == email).first() is not None:
        raise click.ClickException(f"An account for {email} already exists.")

    user = User(email=email, role=Role.ADMIN)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    click.echo(f"✅ Admin '{email}' created (id={user.id}).")


@click.command('list-universities')
@with_appcontext
def list_universities_command():
    """Print university ids and names."""
    universities = University.query.order_by(University.name).all()
    if not universities:
        click.echo("No universities registered.")
        return
    for university in universities:
        click.echo(f"{university.id:>5}  {university.name}")


def init_app(app):
    """Register CLI commands with the Flask app."""
    app.cli.add_command(init_db_command)
    app.cli.add_command(create_admin_command)
    app.cli.add_command(list_universities_command)
