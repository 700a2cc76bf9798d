from logging.config import fileConfig

from sqlalchemy import pool
from alembic import context

from app.config.settings import AuthConfigs
from app.connections.database import Base, normalize_url
from app.models import user  # noqa: F401  registers the users table

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

configs = AuthConfigs()
database_url = normalize_url(configs.DATABASE_URL)

target_metadata = Base.metadata


def run_migrations_offline():
    context.configure(url=database_url, target_metadata=target_metadata, literal_binds=True)

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    # Create engine directly from URL to avoid config interpolation issues
    from sqlalchemy import create_engine
    connectable = create_engine(database_url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
