import psycopg2
from psycopg2.pool import SimpleConnectionPool
from contextlib import contextmanager
from settings import settings
import psycopg2.extras
_pool: SimpleConnectionPool | None = None


def init_pool():
    """
    Initialize the PostgreSQL connection pool.
    Called lazily on first use and by app startup.
    """
    psycopg2.extras.register_uuid()
    global _pool
    if _pool is None:
        if not settings.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is not set.")
        _pool = SimpleConnectionPool(
            minconn=1,
            maxconn=settings.DB_POOL_MAX,
            dsn=settings.DATABASE_URL,
            connect_timeout=5,
        )


def close_pool():
    global _pool
    if _pool:
        _pool.closeall()
        _pool = None


@contextmanager
def get_conn():
    """
    Provides a transactional DB connection.
    Commits on success, rolls back on error.
    """
    if _pool is None:
        init_pool()

    conn = _pool.getconn()

    try:
        # every statement inherits the request ceiling; nothing waits forever on a lock
        timeout = f"{int(settings.DB_STATEMENT_TIMEOUT_MS)}ms"
        with conn.cursor() as cur:
            cur.execute("SELECT set_config('statement_timeout', %s, false);", (timeout,))
            cur.execute("SELECT set_config('idle_in_transaction_session_timeout', %s, false);", (timeout,))
            cur.execute("SET application_name = 'firstclick_backoffice';")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        _pool.putconn(conn)
