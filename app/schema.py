"""
Schema manager.

Forward-only, idempotent schema sync that runs on every boot:
1. CREATE TABLE IF NOT EXISTS for every mapped table (and its indexes)
2. ADD COLUMN IF NOT EXISTS for mapped columns missing from live tables
3. Bootstrap of a default optic and an admin user
"""
import logging
from sqlalchemy import inspect, text, or_
from sqlalchemy.sql.functions import FunctionElement
from app.database import Base

logger = logging.getLogger(__name__)


def sync_schema(engine) -> list:
    """
    Create missing tables and add missing columns.

    Returns:
        list of "table.column" strings that were added
    """
    import app.models  # noqa: F401  (register every mapper on Base.metadata)

    Base.metadata.create_all(engine, checkfirst=True)

    added = []
    with engine.begin() as conn:
        inspector = inspect(conn)
        for table in Base.metadata.sorted_tables:
            existing = {col['name'] for col in inspector.get_columns(table.name)}
            for column in table.columns:
                if column.name in existing:
                    continue
                conn.execute(text(_add_column_sql(table, column, conn.dialect)))
                added.append(f'{table.name}.{column.name}')

    if added:
        logger.info(f"Schema sync added columns: {', '.join(added)}")
    else:
        logger.info("Schema sync: tables up to date")
    return added


def _add_column_sql(table, column, dialect) -> str:
    """Render ALTER TABLE ... ADD COLUMN for one column."""
    preparer = dialect.identifier_preparer
    ddl = f'{preparer.quote(column.name)} {column.type.compile(dialect=dialect)}'

    default = _server_default_sql(column, dialect)
    if default is not None:
        ddl += f' DEFAULT {default}'
        if not column.nullable:
            ddl += ' NOT NULL'

    table_name = preparer.format_table(table)
    if dialect.name == 'postgresql':
        return f'ALTER TABLE {table_name} ADD COLUMN IF NOT EXISTS {ddl}'
    # SQLite has no IF NOT EXISTS here; callers only pass columns the inspector reported missing
    return f'ALTER TABLE {table_name} ADD COLUMN {ddl}'


def _server_default_sql(column, dialect):
    server_default = column.server_default
    if server_default is None:
        return None

    arg = server_default.arg
    if isinstance(arg, str):
        return "'" + arg.replace("'", "''") + "'"
    if dialect.name == 'sqlite' and isinstance(arg, FunctionElement):
        # SQLite rejects non-constant defaults in ADD COLUMN
        return None
    return str(arg.compile(dialect=dialect))


def bootstrap_defaults(session, config) -> None:
    """
    Ensure at least one optic and one admin user exist.

    The admin gets the configured default password, hashed before storage.
    """
    from app.models import Optic, User, UserRole

    try:
        optic = session.query(Optic).filter(Optic.is_active.is_(True)).order_by(Optic.id).first()
        if optic is None:
            optic = Optic(name=config.get('DEFAULT_OPTIC_NAME', 'Óptica Principal'))
            session.add(optic)
            session.flush()
            logger.info(f"Default optic created: {optic.name} (id={optic.id})")

        admin_exists = session.query(User.id).filter(User.role == UserRole.ADMIN.value).first()
        if not admin_exists:
            username = config.get('DEFAULT_ADMIN_USERNAME', 'admin')
            email = config.get('DEFAULT_ADMIN_EMAIL', 'admin@opticapp.com')

            taken = session.query(User.id).filter(
                or_(User.username == username, User.email == email)
            ).first()
            if taken:
                logger.warning(
                    f"No admin user exists and username '{username}' or email '{email}' is taken; "
                    f"create one with 'flask create-admin'"
                )
            else:
                admin = User(
                    username=username,
                    email=email,
                    role=UserRole.ADMIN.value,
                    optic_id=optic.id,
                    is_approved=True,
                    is_active=True,
                )
                admin.set_password(config.get('DEFAULT_ADMIN_PASSWORD', 'admin123'))
                session.add(admin)
                logger.warning(
                    f"Admin user '{username}' created with the default password. "
                    f"Change it in production."
                )

        session.commit()
    except Exception:
        session.rollback()
        raise
