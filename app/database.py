"""Database configuration, initialization and query helpers."""
import logging
import time
from collections import namedtuple

from sqlalchemy import BigInteger, Integer, create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

from app.exceptions import DatabaseUnavailableError

logger = logging.getLogger(__name__)

# Create SQLAlchemy base
Base = declarative_base()

# BIGSERIAL on PostgreSQL, INTEGER PRIMARY KEY (rowid alias) on SQLite
IdType = BigInteger().with_variant(Integer(), 'sqlite')

# Global session and engine
engine = None
db_session = None

QueryResult = namedtuple('QueryResult', ['rows', 'rowcount'])


def _engine_options(config):
    """Build create_engine keyword arguments from app config."""
    uri = config['SQLALCHEMY_DATABASE_URI']
    options = {
        'echo': config.get('SQLALCHEMY_ECHO', False),
        'pool_pre_ping': True,  # Enable connection health checks
    }
    if uri.startswith('sqlite'):
        return options

    options.update(
        pool_size=config.get('DB_POOL_SIZE', 10),
        max_overflow=config.get('DB_MAX_OVERFLOW', 20),
        pool_timeout=config.get('DB_POOL_TIMEOUT', 2),
        pool_recycle=config.get('DB_POOL_RECYCLE', 30),
        connect_args={'connect_timeout': config.get('DB_CONNECT_TIMEOUT', 10)},
    )
    return options


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    engine = create_engine(app.config['SQLALCHEMY_DATABASE_URI'], **_engine_options(app.config))

    connect_with_retry(
        engine,
        retries=app.config.get('DB_CONNECT_RETRIES', 5),
        delay=app.config.get('DB_CONNECT_RETRY_DELAY', 5),
    )

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    if app.config.get('AUTO_INIT_DB', True):
        from app.schema import sync_schema, bootstrap_defaults
        sync_schema(engine)
        bootstrap_defaults(db_session, app.config)

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def connect_with_retry(target_engine, retries=5, delay=5):
    """
    Open a first connection, retrying a fixed number of times.

    Raises:
        DatabaseUnavailableError: when every attempt failed
    """
    attempts = max(1, int(retries))
    for attempt in range(1, attempts + 1):
        try:
            with target_engine.connect() as conn:
                conn.execute(text('SELECT 1'))
            if attempt > 1:
                logger.info(f"Database connection established on attempt {attempt}")
            return
        except OperationalError as e:
            logger.warning(f"Database connection attempt {attempt}/{attempts} failed: {e}")
            if attempt < attempts:
                time.sleep(delay)

    raise DatabaseUnavailableError(
        f'No se pudo conectar a la base de datos después de {attempts} intentos'
    )


def get_session():
    """Get database session."""
    return db_session


def get_engine():
    """Get the process-wide engine."""
    return engine


# =====================================================
# QUERY GATEWAY
# =====================================================

def translate_placeholders(query: str, params=None):
    """
    Rewrite portable ``?`` placeholders into named binds.

    ``?`` characters inside single- or double-quoted literals are left alone.
    Returns the rewritten query and the bind dict (``p1``, ``p2``, ...).

    Raises:
        ValueError: if the number of placeholders and params differ
    """
    params = list(params or [])
    out = []
    index = 0
    quote = None

    for char in query:
        if quote:
            if char == quote:
                quote = None
            out.append(char)
        elif char in ("'", '"'):
            quote = char
            out.append(char)
        elif char == '?':
            index += 1
            out.append(f':p{index}')
        else:
            out.append(char)

    if index != len(params):
        raise ValueError(
            f'Query expects {index} parameters but {len(params)} were given'
        )

    binds = {f'p{i}': value for i, value in enumerate(params, start=1)}
    return ''.join(out), binds


def _run(query, params, executor):
    sql, binds = translate_placeholders(query, params)
    return executor.execute(text(sql), binds)


def execute(query: str, params=None, session=None) -> QueryResult:
    """
    Execute a parameterized statement and return its rows and rowcount.

    With ``session`` the statement joins that session's transaction; without
    it a pooled connection is checked out for this statement only and
    released on every exit path.
    """
    if session is not None:
        result = _run(query, params, session)
        return _to_query_result(result)

    with engine.begin() as conn:
        result = _run(query, params, conn)
        return _to_query_result(result)


def execute_single(query: str, params=None, session=None):
    """Execute a statement and return its first row as a dict, or None."""
    result = execute(query, params, session=session)
    return result.rows[0] if result.rows else None


def execute_insert(query: str, params=None, session=None):
    """
    Execute an INSERT ... RETURNING statement and return the inserted row.

    Raises:
        RuntimeError: if the statement returned no row
    """
    result = execute(query, params, session=session)
    if not result.rows:
        raise RuntimeError('No rows returned from INSERT query')
    return result.rows[0]


def _to_query_result(result) -> QueryResult:
    rowcount = result.rowcount
    rows = [dict(row) for row in result.mappings()] if result.returns_rows else []
    if rowcount is None or rowcount < 0:
        rowcount = len(rows)
    return QueryResult(rows=rows, rowcount=rowcount)
