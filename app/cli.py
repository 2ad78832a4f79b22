import click
from flask.cli import with_appcontext

from app.extensions import db
from app.models.user import ROLE_ADMIN, ROLE_USER, User
from app.services.catalog import import_materials, import_services
from app.services.errors import ServiceError


@click.group()
def catalog():
    """Material/service catalog maintenance."""


def _run_import(fn, path):
    try:
        inserted, updated = fn(db.session, path)
    except ServiceError as exc:
        db.session.rollback()
        raise click.ClickException(str(exc))
    db.session.commit()
    click.echo(f"Catalog import complete: inserted={inserted} updated={updated}")


@catalog.command("import-materials")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def catalog_import_materials(path):
    """Upsert materials from a .csv/.xlsx sheet (matched by name)."""
    _run_import(import_materials, path)


@catalog.command("import-services")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def catalog_import_services(path):
    _run_import(import_services, path)


@click.group()
def users():
    """User management."""


@users.command("create")
@click.option("--email", required=True)
@click.option("--name", default=None)
@click.option("--password", default=None)
@click.option("--role", type=click.Choice([ROLE_USER, ROLE_ADMIN]), default=ROLE_USER)
@with_appcontext
def users_create(email, name, password, role):
    if db.session.query(User).filter_by(email=email.lower()).count():
        raise click.ClickException("User already exists")

    user = User(email=email.lower(), name=name, role=role, is_active=True)
    if password:
        user.set_password(password)
    db.session.add(user)
    db.session.commit()

    click.echo(f"User created id={user.id} email={user.email} role={role}")


@users.command("set-role")
@click.option("--email", required=True)
@click.option("--role", type=click.Choice([ROLE_USER, ROLE_ADMIN]), required=True)
@with_appcontext
def users_set_role(email, role):
    user = db.session.query(User).filter_by(email=email.lower()).one_or_none()
    if not user:
        raise click.ClickException(f"No user with email {email}")
    user.role = role
    db.session.commit()
    click.echo(f"Role updated: user_id={user.id} role={role}")


def register_cli(app):
    app.cli.add_command(catalog)
    app.cli.add_command(users)
