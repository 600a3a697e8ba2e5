"""
Pytest configuration and fixtures for billing-intake tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import os
from typing import Generator

import psycopg
import pytest
from psycopg.rows import dict_row
from testcontainers.postgres import PostgresContainer

from billing_intake.cli.main import DEFAULT_SCHEMA_PATH
from billing_intake.config import DEFAULT_PROVIDER_HEADERS_PATH
from billing_intake.ingest.provider_headers import ProviderHeaderConfig
from billing_intake.warehouse.connection import DatabaseConnectionPool

ROOT_DIR = os.path.dirname(os.path.dirname(__file__))


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance with the billing schema applied
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_intake",
        password="test_password",
        dbname="test_billing",
        driver=None,
    ) as postgres:
        init_sql_path = str(DEFAULT_SCHEMA_PATH)
        with open(init_sql_path, "r") as f:
            init_sql = f.read()

        with psycopg.connect(postgres.get_connection_url()) as conn:
            with conn.cursor() as cur:
                cur.execute(init_sql)
            conn.commit()

        yield postgres


@pytest.fixture(scope="function")
def db_connection(postgres_container) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a database connection for a single test

    Yields:
        psycopg Connection returning dict rows
    """
    with psycopg.connect(postgres_container.get_connection_url(), row_factory=dict_row) as conn:
        yield conn
        conn.rollback()


@pytest.fixture(scope="function")
def clean_db(db_connection) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a clean database by truncating all tables before each test

    Truncating batch_record cascades to every staged and final table.
    """
    with db_connection.cursor() as cur:
        cur.execute("TRUNCATE TABLE batch_record CASCADE")
        cur.execute("TRUNCATE TABLE account_department_mapping")
        cur.execute("TRUNCATE TABLE wired_report")
    db_connection.commit()

    yield db_connection


@pytest.fixture(scope="function")
def pool(postgres_container, clean_db) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open a connection pool against the test container

    Yields:
        Open DatabaseConnectionPool
    """
    with DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_billing",
        user="test_intake",
        password="test_password",
        min_size=1,
        max_size=4,
    ) as db_pool:
        yield db_pool


# =======================
# FILE FIXTURES
# =======================

@pytest.fixture(scope="session")
def provider_headers() -> ProviderHeaderConfig:
    """Header configuration shipped with the package"""
    return ProviderHeaderConfig.load(DEFAULT_PROVIDER_HEADERS_PATH)


@pytest.fixture(scope="session")
def test_data_dir() -> str:
    """
    Get path to test data fixtures directory

    Returns:
        Path to tests/fixtures directory
    """
    return os.path.join(os.path.dirname(__file__), "fixtures")


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session")
def test_env_vars():
    """
    Set test environment variables

    This fixture loads test.env and sets environment variables
    """
    from dotenv import load_dotenv

    env_path = os.path.join(ROOT_DIR, "config", "test.env")
    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)
