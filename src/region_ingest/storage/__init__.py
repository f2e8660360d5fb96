"""SQLite storage: ORM tables, engine policy and Alembic migrations."""
