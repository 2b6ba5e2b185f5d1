from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlmodel import SQLModel

import clinicflow.models  # noqa: F401  registers every table on SQLModel.metadata
from clinicflow.config import settings
from clinicflow.db import make_engine

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name)

# DB URL comes from clinicflow settings (env / .env), never from alembic.ini
config.set_main_option("sqlalchemy.url", settings.database_url)

target_metadata = SQLModel.metadata

# batch mode lets ALTER TABLE work on SQLite
MIGRATION_OPTIONS = {"target_metadata": target_metadata, "compare_type": True, "render_as_batch": True}


def run_migrations_offline() -> None:
    context.configure(
        url=settings.database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **MIGRATION_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = make_engine(settings)
    with engine.connect() as connection:
        context.configure(connection=connection, **MIGRATION_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
