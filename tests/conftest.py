"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
from datetime import date
from pathlib import Path
import sys
from typing import Generator

import pytest
from flask import Flask

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from vista_buena.app import create_app, get_repositories, shutdown_store
from vista_buena.config import TestingConfig
from vista_buena.data_access import seed
from vista_buena.data_access.registry import Repositories

SEED_DAY = date(2024, 6, 1)


class _TestConfig(TestingConfig):
    STORE_URL: str = ""


def run(coro):
    """Run one repository coroutine to completion."""

    return asyncio.run(coro)


@pytest.fixture()
def app(tmp_path: Path) -> Generator[Flask, None, None]:
    """Configure an application backed by a temp SQLite store."""

    _TestConfig.STORE_URL = f"sqlite:///{tmp_path / 'store.db'}"
    application = create_app(_TestConfig)
    yield application
    shutdown_store(application)


@pytest.fixture()
def runner(app: Flask):
    """Flask CLI runner."""

    return app.test_cli_runner()


@pytest.fixture()
def repos(app: Flask) -> Repositories:
    """Empty repositories sharing the app's store."""

    return get_repositories(app)


@pytest.fixture()
def seeded(repos: Repositories) -> Repositories:
    """Repositories populated with the demo data."""

    run(seed.seed(repos, today=SEED_DAY))
    return repos


@pytest.fixture()
def resident(seeded: Repositories):
    return run(seeded.users.get_by_email("lucia@vistabuena.com"))


@pytest.fixture()
def pool(seeded: Repositories):
    return next(resource for resource in run(seeded.resources.get_all()) if resource.name == "Pool")


@pytest.fixture()
def pending_reservation(seeded: Repositories):
    return run(seeded.reservations.list_pending())[0]
