"""
Alembic migration environment configuration.

Loads the database URL from Boardrank settings rather than alembic.ini and
points autogenerate at the Boardrank models.

Usage:
    alembic upgrade head
    alembic upgrade head --sql > migration.sql   # offline
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

# Models must be imported before Base.metadata is read
from boardrank.config import settings
from boardrank.db.models import Base

config = context.config

# DATABASE_URL from the environment wins over anything in alembic.ini
config.set_main_option("sqlalchemy.url", settings.database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL without connecting to the database."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
