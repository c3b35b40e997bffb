"""PostgreSQL key-value surface for the read list."""
import psycopg2
from psycopg2 import pool
from typing import Optional
import logging

from bookscout.storage import StorageError

logger = logging.getLogger(__name__)


class Database:
    """PostgreSQL key-value store with connection pooling."""

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        try:
            self.connection_pool = pool.SimpleConnectionPool(
                min_conn,
                max_conn,
                connection_string
            )
        except psycopg2.Error as e:
            raise StorageError(f"Failed to create connection pool: {e}") from e

        logger.info("Database connection pool created successfully")

    def init_schema(self):
        """Create the key-value table if it doesn't exist."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key VARCHAR(255) PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                conn.commit()
                logger.info("Database schema initialized successfully")
        except psycopg2.Error as e:
            conn.rollback()
            raise StorageError(f"Failed to initialize schema: {e}") from e
        finally:
            self.connection_pool.putconn(conn)

    def get_item(self, key: str) -> Optional[str]:
        """
        Get the value stored under a key.

        Args:
            key: Logical key

        Returns:
            Stored string or None
        """
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT value FROM kv_store WHERE key = %s", (key,))
                row = cur.fetchone()
                return row[0] if row else None
        except psycopg2.Error as e:
            conn.rollback()
            raise StorageError(f"Failed to read {key}: {e}") from e
        finally:
            self.connection_pool.putconn(conn)

    def set_item(self, key: str, value: str) -> None:
        """
        Insert or replace the value stored under a key.

        Args:
            key: Logical key
            value: Serialized blob
        """
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (%s, %s, CURRENT_TIMESTAMP)
                    ON CONFLICT (key) DO UPDATE SET
                        value = EXCLUDED.value,
                        updated_at = CURRENT_TIMESTAMP
                """, (key, value))
                conn.commit()
                logger.info(f"Stored {key} ({len(value)} bytes)")
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Failed to store {key}: {e}")
            raise StorageError(f"Failed to store {key}: {e}") from e
        finally:
            self.connection_pool.putconn(conn)

    def remove_item(self, key: str) -> None:
        """Delete a key; deleting a missing key is not an error."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM kv_store WHERE key = %s", (key,))
                conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            raise StorageError(f"Failed to delete {key}: {e}") from e
        finally:
            self.connection_pool.putconn(conn)

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
