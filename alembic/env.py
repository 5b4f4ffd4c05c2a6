from logging.config import fileConfig

from sqlalchemy import create_engine, pool
from alembic import context

from agrilink_orders.config import settings
from agrilink_orders.infrastructure.db_schema import metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _database_url() -> str:
    """POSTGRES_CONNECTION_STRING from the environment, else sqlalchemy.url from alembic.ini"""
    if settings.POSTGRES_CONNECTION_STRING:
        return settings.SYNC_DATABASE_URL
    return config.get_main_option("sqlalchemy.url")


def _run(**configure_kwargs) -> None:
    context.configure(target_metadata=metadata, compare_type=True, **configure_kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit SQL to stdout without a database connection"""
    _run(url=_database_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})


def run_migrations_online() -> None:
    engine = create_engine(_database_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _run(connection=connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
