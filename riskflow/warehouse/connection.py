"""
PostgreSQL connection pool management using psycopg3

Used by the PostgreSQL result store and rejection sink. Settings come from
the DB_* environment variables unless passed explicitly.
"""
import os
import time
from contextlib import contextmanager

from psycopg import OperationalError
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from riskflow.observability import metrics
from riskflow.observability.logger import get_logger

logger = get_logger(__name__)


class DatabaseConnectionPool:
    """
    PostgreSQL connection pool manager using psycopg3

    Rows are returned as dictionaries. Open it explicitly with ``open()`` or
    use it as a context manager.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
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
        self.host = host or os.getenv("DB_HOST", "localhost")
        self.port = port or int(os.getenv("DB_PORT", "5432"))
        self.database = database or os.getenv("DB_NAME", "riskflow")
        self.user = user or os.getenv("DB_USER", "riskflow")
        self.password = password or os.getenv("DB_PASSWORD")

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

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def _new_pool(self) -> ConnectionPool:
        return ConnectionPool(
            conninfo=self.conninfo,
            min_size=self.min_size,
            max_size=self.max_size,
            timeout=self.timeout,
            kwargs={"row_factory": dict_row},
            open=False,
        )

    def open(self, max_retries: int = 3, retry_delay: float = 2.0) -> None:
        """
        Open the connection pool, retrying failed connection attempts.

        Args:
            max_retries: Maximum number of connection attempts
            retry_delay: Delay between attempts in seconds

        Raises:
            OperationalError: If connection fails after all retries
        """
        if self._pool is not None:
            return

        for attempt in range(1, max_retries + 1):
            pool = self._new_pool()
            try:
                pool.open(wait=True, timeout=self.timeout)
            except OperationalError as e:
                pool.close()
                if attempt == max_retries:
                    metrics.increment_counter(metrics.retries_total, 1, operation="db_connect", status="exhausted")
                    raise OperationalError(
                        f"Failed to connect to database after {max_retries} attempts: {e}"
                    ) from e
                metrics.increment_counter(metrics.retries_total, 1, operation="db_connect", status="retrying")
                logger.warning(
                    f"Database connection attempt {attempt} failed, retrying",
                    extra={"host": self.host, "database": self.database, "error": str(e)},
                )
                time.sleep(retry_delay)
            else:
                self._pool = pool
                logger.info(
                    "Database connection pool opened",
                    extra={"host": self.host, "database": self.database},
                )
                return

    def close(self) -> None:
        """Close the connection pool"""
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self):
        """
        Get a connection from the pool

        The pool commits on a clean exit and rolls back when the block raises.

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
    def transaction(self):
        """
        Run a block inside one database transaction.

        Yields:
            psycopg.Cursor: Cursor bound to the transaction
        """
        with self.get_connection() as conn:
            with conn.transaction():
                with conn.cursor() as cur:
                    yield cur

    def execute_query(self, query: str, params: tuple | dict | None = None) -> list[dict]:
        """
        Execute a SELECT query and return results

        Returns:
            List of dictionaries (one per row)
        """
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                return cur.fetchall()

    def execute_command(self, command: str, params: tuple | dict | None = None) -> int:
        """
        Execute an INSERT/UPDATE/DELETE/DDL command

        Returns:
            Number of rows affected
        """
        with self.transaction() as cur:
            cur.execute(command, params)
            return cur.rowcount

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
