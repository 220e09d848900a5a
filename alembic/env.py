"""Alembic environment for the event scheduler schema.

Run from the repository root (``alembic upgrade head``); ``alembic.ini``
prepends ``backend`` to ``sys.path``. Pass ``-x dburl=...`` to migrate a
database other than the configured one.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

import app.models  # noqa: F401
from app.core.config import get_settings
from app.core.database import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_database_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("dburl")
    if override:
        return override
    return get_settings().database_url_sync


def _configure_options(url: str) -> dict:
    # SQLite cannot ALTER most constraints in place.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "compare_server_default": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    url = get_database_url()
    context.configure(url=url, literal_binds=True, **_configure_options(url))

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = get_database_url()
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = url

    connectable = engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_options(url))

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
