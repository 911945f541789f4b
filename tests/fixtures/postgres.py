"""PostgreSQL related fixtures for Flow Modeler.

PostgreSQL engines are backed by a temporary Postgres 17 instance launched with
Testcontainers and migrated by the migration runner.
"""

from __future__ import annotations

import io
import re
from collections.abc import Iterator
from typing import TYPE_CHECKING

import docker
import pytest
from sqlalchemy import text

from flowmodeler.infrastructure.db.engine import make_engine
from flowmodeler.infrastructure.db.migrations import run_migrations

try:
    from testcontainers.postgres import (
        PostgresContainer,  # pyright: ignore[reportMissingTypeStubs]
    )
except Exception:  # pragma: no cover # pylint: disable=broad-except
    PostgresContainer = None  # pylint: disable=invalid-name

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

# pylint: disable=redefined-outer-name

PG_USER = "modeler"
PG_PASSWORD = "abc123"  # nosec B105
MODELER_TABLES = ("ACT_DE_MODEL_RELATION", "ACT_DE_MODEL_HISTORY", "ACT_DE_MODEL")


def _docker_available() -> bool:
    try:
        docker.from_env().ping()
    except Exception:  # pylint: disable=broad-except
        return False
    return True


DOCKER_UP = _docker_available()


def pytest_collection_modifyitems(items):
    """Skip Postgres/Testcontainers tests if Docker is unavailable."""
    if DOCKER_UP:
        return
    skip = pytest.mark.skip(reason="Docker/Testcontainers backend not available")
    for item in items:
        fixturenames = getattr(item, "fixturenames", ())
        if "postgres_engine" in fixturenames or "pg_url" in fixturenames:
            item.add_marker(skip)
        elif "postgres" in item.nodeid:
            item.add_marker(skip)


@pytest.fixture(scope="session")
def pg_url() -> Iterator[str]:
    """Session Postgres 17 container URL (psycopg v3), unmigrated."""
    if PostgresContainer is None:
        pytest.skip("testcontainers not installed")

    with PostgresContainer(
        image="postgres:17",
        username=PG_USER,
        password=PG_PASSWORD,
        dbname="modeler",
    ) as pg:
        url = pg.get_connection_url()
        yield re.sub(r"\+psycopg2\b", "+psycopg", url)


@pytest.fixture
def postgres_engine(pg_url: str) -> Iterator[Engine]:
    """Per-test Postgres engine at the changelog head; domain tables emptied after."""
    eng = make_engine(pg_url)
    run_migrations(eng, stdout=io.StringIO())
    try:
        yield eng
    finally:
        with eng.begin() as conn:
            for table in MODELER_TABLES:
                conn.execute(text(f'DELETE FROM "{table}"'))
        eng.dispose()
