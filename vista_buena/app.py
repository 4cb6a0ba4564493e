"""Application factory for the Vista Buena records store."""

from __future__ import annotations

import asyncio
import atexit
import json
import logging
from typing import Any, Awaitable, Optional, TypeVar

import click
from flask import Flask, current_app
from flask.logging import default_handler

from .config import BaseConfig, get_config
from .data_access.db import KeyValueStore
from .data_access.errors import ReferentialIntegrityError, RepositoryError, StorageCorruptionError
from .data_access.registry import NAMESPACE_SUFFIXES, Repositories
from .data_access.seed import seed

EXTENSION_KEY = "vista_buena"

T = TypeVar("T")


def create_app(config_object: type[BaseConfig] | None = None) -> Flask:
    """Create the application, open its store and wire the repositories."""

    app = Flask(__name__)

    config_cls = config_object or get_config()
    app.config.from_object(config_cls)

    configure_logging(app)
    init_store(app)
    register_cli(app)
    return app


def configure_logging(app: Flask) -> None:
    """Route package loggers through Flask's handler at the configured level."""

    level = logging.getLevelName(str(app.config["LOG_LEVEL"]).upper())
    if not isinstance(level, int):
        level = logging.INFO
    app.logger.setLevel(level)
    package_logger = logging.getLogger(__package__)
    package_logger.setLevel(level)
    if default_handler not in package_logger.handlers:
        package_logger.addHandler(default_handler)


def init_store(app: Flask) -> Repositories:
    """Open the configured store and expose the repositories on the app."""

    store = KeyValueStore.open(app.config["STORE_URL"], latency_ms=app.config["STORE_LATENCY_MS"])
    repos = Repositories.build(store, prefix=app.config["NAMESPACE_PREFIX"])
    app.extensions[EXTENSION_KEY] = repos
    atexit.register(store.close)
    app.logger.debug("Store ready at %s", app.config["STORE_URL"])
    return repos


def shutdown_store(app: Flask) -> None:
    """Close the store of ``app`` now instead of at interpreter exit."""

    store = get_repositories(app).store
    atexit.unregister(store.close)
    store.close()


def get_repositories(app: Optional[Flask] = None) -> Repositories:
    """Return the repositories of ``app`` (defaults to the current app)."""

    app = app or current_app
    return app.extensions[EXTENSION_KEY]


def run(awaitable: Awaitable[T]) -> T:
    """Drive a repository coroutine from synchronous code such as CLI commands."""

    async def _main() -> T:
        return await awaitable

    try:
        return asyncio.run(_main())
    except StorageCorruptionError as exc:
        raise click.ClickException(f"{exc} Run 'reset-store' to clear the damaged data.") from exc
    except RepositoryError as exc:
        raise click.ClickException(str(exc)) from exc


def register_cli(app: Flask) -> None:
    """Attach maintenance commands to ``flask --app vista_buena.app``."""

    kinds = click.Choice(sorted(NAMESPACE_SUFFIXES))

    @app.cli.command("init-store")
    def init_store_command() -> None:
        """Create the store schema if needed."""

        get_repositories(app).store.ensure_schema()
        click.echo(f"Initialized the store at {app.config['STORE_URL']}.")

    @app.cli.command("seed")
    def seed_command() -> None:
        """Load demo users, resources, inventory and reservations."""

        created = run(seed(get_repositories(app)))
        summary = ", ".join(f"{count} {kind}" for kind, count in created.items())
        click.echo(f"Seed data applied ({summary}).")

    @app.cli.command("reset-store")
    @click.option("--namespace", "kind", type=kinds, default=None, help="Only clear one entity kind.")
    @click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
    def reset_store_command(kind: Optional[str], yes: bool) -> None:
        """Drop stored collections (all of them unless --namespace is given)."""

        repos = get_repositories(app)
        targets = [repos.by_kind(kind)] if kind else list(repos.all().values())
        if not yes:
            names = ", ".join(repo.namespace for repo in targets)
            click.confirm(f"Delete all records in {names}?", abort=True)

        async def _reset() -> int:
            namespaces = [repo.namespace for repo in targets]
            async with repos.store.locked(*namespaces, repos.reservations.namespace):
                if repos.reservations not in targets:
                    referenced = [repo for repo in targets if repo in (repos.users, repos.resources)]
                    if referenced and await repos.reservations.get_all():
                        raise ReferentialIntegrityError(
                            f"Reservations still reference {referenced[0].namespace}; "
                            "clear reservations too or reset the whole store.",
                            namespace=referenced[0].namespace,
                        )
                removed = 0
                for namespace in namespaces:
                    removed += await repos.store.delete_namespace(namespace)
            return removed

        removed = run(_reset())
        click.echo(f"Cleared {removed} namespace(s).")

    @app.cli.command("dump")
    @click.argument("kind", type=kinds, required=False)
    def dump_command(kind: Optional[str]) -> None:
        """Print stored records as JSON."""

        repos = get_repositories(app)
        selected = {kind: repos.by_kind(kind)} if kind else repos.all()

        async def _dump() -> dict[str, Any]:
            return {
                name: [record.to_record() for record in await repo.get_all()]
                for name, repo in selected.items()
            }

        click.echo(json.dumps(run(_dump()), indent=2))
