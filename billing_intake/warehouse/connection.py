"""
PostgreSQL connection pool management using psycopg3

Stores never open their own transactions. Callers open a unit of work
with DatabaseConnectionPool.unit_of_work() and pass the connection it
yields to every store call that must commit or roll back together.
"""
import time
from contextlib import contextmanager
from typing import Iterator

import psycopg
from psycopg import OperationalError
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from billing_intake.config import load_settings


class DatabaseConnectionPool:
    """
    PostgreSQL connection pool manager using psycopg3

    Each unit_of_work() call checks out its own connection, so a unit
    of work opened while another one is failing or rolled back commits
    independently of it.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 2,
        max_size: int = 10,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize database connection pool

        Args:
            host: Database host (defaults to env var DB_HOST)
            port: Database port (defaults to env var DB_PORT)
            database: Database name (defaults to env var DB_NAME)
            user: Database user (defaults to env var DB_USER)
            password: Database password (defaults to env var DB_PASSWORD)
            min_size: Minimum pool size
            max_size: Maximum pool size
            timeout: Connection timeout in seconds

        Raises:
            ValueError: If no password is configured
        """
        settings = load_settings()
        self.host = host or settings.db_host
        self.port = port or settings.db_port
        self.database = database or settings.db_name
        self.user = user or settings.db_user
        self.password = password or settings.db_password

        if not self.password:
            raise ValueError(
                "Database password must be provided. "
                "Set DB_PASSWORD environment variable or pass to constructor."
            )

        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout

        self.conninfo = (
            f"host={self.host} "
            f"port={self.port} "
            f"dbname={self.database} "
            f"user={self.user} "
            f"password={self.password} "
            f"connect_timeout={int(self.timeout)}"
        )

        self._pool: ConnectionPool | None = None

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the connection pool with retry logic.

        Args:
            max_retries: Maximum number of connection attempts
            retry_delay: Delay between retries in seconds

        Raises:
            OperationalError: If connection fails after all retries
        """
        if self._pool is not None:
            return

        self._pool = ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

        for attempt in range(1, max_retries + 1):
            try:
                self._pool.open(wait=True, timeout=self.timeout)
                return
            except OperationalError as e:
                if attempt < max_retries:
                    time.sleep(retry_delay)
                else:
                    self._pool = None
                    raise OperationalError(
                        f"Failed to connect to database after {max_retries} attempts: {e}"
                    ) from e

    def close(self) -> None:
        """Close the connection pool"""
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self) -> Iterator[psycopg.Connection]:
        """
        Get a connection from the pool

        Yields:
            psycopg.Connection: Database connection

        Raises:
            RuntimeError: If pool is not open
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is not open. Call open() first.")

        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def unit_of_work(self) -> Iterator[psycopg.Connection]:
        """
        Open an independent transaction on a fresh pooled connection

        Commits when the block exits cleanly and rolls back when it raises.

        Yields:
            psycopg.Connection: Connection bound to the open transaction
        """
        with self.get_connection() as conn:
            with conn.transaction():
                yield conn

    def execute_script(self, sql: str) -> None:
        """
        Run a multi-statement SQL script in one transaction

        Args:
            sql: Script text, e.g. billing_intake/resources/init-db.sql
        """
        with self.unit_of_work() as conn:
            conn.execute(sql)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
