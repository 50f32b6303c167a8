"""
Database migration utilities.
"""
import os
from . import engine
from ..logging_config import logger


def run_sql_migrations():
    """
    Run all SQL migration files in the scripts directory.

    Migration files should:
    - Be named with a sortable prefix (e.g., 001_initial.sql, 002_add_columns.sql)
    - End with .sql extension
    - Be idempotent (safe to run multiple times)

    The scripts are PostgreSQL-specific (pgvector). Other dialects get the
    tables straight from the ORM metadata.

    Raises:
        Exception: If any migration fails
    """
    if engine.dialect.name != "postgresql":
        from ..models import Base
        Base.metadata.create_all(engine)
        logger.info("Created tables from ORM metadata", dialect=engine.dialect.name)
        return

    migrations_dir = os.path.join(os.path.dirname(__file__), "scripts")

    if not os.path.exists(migrations_dir):
        logger.warning("Migrations directory not found", path=migrations_dir)
        return

    migration_files = sorted(
        f for f in os.listdir(migrations_dir)
        if f.endswith(".sql")
    )

    if not migration_files:
        logger.warning("No migration files found", path=migrations_dir)
        return

    with engine.begin() as conn:
        for filename in migration_files:
            filepath = os.path.join(migrations_dir, filename)
            logger.info("Running migration", file=filename)

            with open(filepath, "r", encoding="utf-8") as f:
                sql = f.read()

            conn.exec_driver_sql(sql)

    logger.info("Migrations completed", count=len(migration_files))
