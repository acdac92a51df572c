"""CLI commands for the EcoSangam API."""

import click
import uvicorn
from sqlalchemy.exc import SQLAlchemyError

from ecosangam_api.db.base import Base
from ecosangam_api.db.seed import seed_all
from ecosangam_api.db.session import SessionLocal, engine
from ecosangam_api.settings import get_settings


@click.group()
def cli():
    """EcoSangam API CLI."""
    pass


@cli.command("init-db")
def init_db():
    """Create database tables."""
    click.echo(f"Creating tables on {engine.url.render_as_string(hide_password=True)}...")
    Base.metadata.create_all(engine)
    click.echo("✓ Tables created.")


@cli.command()
def seed():
    """Seed demo organizations, users and projects."""
    if get_settings().is_production:
        raise click.ClickException("Refusing to seed demo accounts in production.")

    click.echo("Seeding initial data...")
    Base.metadata.create_all(engine)
    db = SessionLocal()
    try:
        seed_all(db)
        click.echo("✓ Seed data created.")
    except SQLAlchemyError as e:
        db.rollback()
        raise click.ClickException(f"Error seeding data: {e}") from e
    finally:
        db.close()


@cli.command()
@click.option("--reload", is_flag=True, help="Reload on code changes.")
def serve(reload: bool):
    """Run the API server."""
    settings = get_settings()
    uvicorn.run("ecosangam_api.main:app", host=settings.api_host, port=settings.api_port, reload=reload)


if __name__ == "__main__":
    cli()
